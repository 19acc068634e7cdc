from __future__ import annotations


class SaveMyChatError(Exception):
    """Base class for errors raised by the store and its callers."""


class ValidationError(SaveMyChatError):
    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    @classmethod
    def missing(cls, field: str) -> ValidationError:
        return cls(f"{field} is required", field=field)


class NotFound(SaveMyChatError):
    def __init__(self, kind: str, key: object) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class StoreError(SaveMyChatError):
    pass


class Cancelled(SaveMyChatError):
    pass


class Timeout(Cancelled):
    pass
