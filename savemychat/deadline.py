from __future__ import annotations

import threading
import time

from .errors import Cancelled, Timeout


class Deadline:
    """Cancellation token handed to store operations.

    A deadline is either cancelled explicitly (``cancel()``) or expires after
    ``timeout_s`` seconds. Store operations consult it before every statement
    and from a SQLite progress handler while a statement runs.
    """

    def __init__(self, timeout_s: float | None = None) -> None:
        self._expires_at = None if timeout_s is None else time.monotonic() + timeout_s
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def should_abort(self) -> int:
        # sqlite3 progress handlers abort on a truthy return value.
        return 1 if (self.cancelled or self.expired) else 0

    def error(self) -> Cancelled:
        if self.cancelled:
            return Cancelled("operation cancelled")
        return Timeout("operation timed out")

    def check(self) -> None:
        if self.should_abort():
            raise self.error()


def checkpoint(deadline: Deadline | None) -> None:
    if deadline is not None:
        deadline.check()
