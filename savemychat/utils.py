from __future__ import annotations

import datetime as dt

from .errors import ValidationError


def now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed.astimezone(dt.UTC)


def normalize_timestamp(value: object, *, field: str) -> str | None:
    """Normalise an incoming timestamp to the stored ISO-8601 UTC form."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 string", field=field)
    parsed = parse_iso8601(value)
    if parsed is None:
        raise ValidationError(f"{field} is not a valid timestamp: {value!r}", field=field)
    return parsed.isoformat()


def split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
