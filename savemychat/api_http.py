from __future__ import annotations

import hmac
import json
from http.server import BaseHTTPRequestHandler
from typing import Any
from urllib.parse import parse_qs

from .errors import ValidationError
from .utils import split_csv

EXTENSION_ORIGIN_PREFIX = "chrome-extension://"
CORS_ALLOW_METHODS = "GET,POST,PUT,DELETE,OPTIONS"
CORS_ALLOW_HEADERS = "Origin,Content-Type,Accept,Authorization"

_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    429: "TOO_MANY_REQUESTS",
    500: "INTERNAL_SERVER_ERROR",
    503: "SERVICE_UNAVAILABLE",
    504: "GATEWAY_TIMEOUT",
}


def error_code(status: int) -> str:
    return _ERROR_CODES.get(status, "UNKNOWN_ERROR")


def send_json_response(
    handler: BaseHTTPRequestHandler,
    payload: Any,
    status: int = 200,
) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def send_error_response(
    handler: BaseHTTPRequestHandler,
    status: int,
    message: str,
    **extra: Any,
) -> None:
    payload: dict[str, Any] = {"error": message, "code": error_code(status)}
    payload.update(extra)
    send_json_response(handler, payload, status=status)


def send_empty_response(handler: BaseHTTPRequestHandler, status: int = 204) -> None:
    handler.send_response(status)
    handler.send_header("Content-Length", "0")
    handler.end_headers()


def read_json_body(handler: BaseHTTPRequestHandler) -> dict[str, Any] | None:
    try:
        length = int(handler.headers.get("Content-Length", "0") or 0)
    except ValueError:
        return None
    if length <= 0:
        return None
    try:
        payload = json.loads(handler.rfile.read(length).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


def require_body(handler: BaseHTTPRequestHandler, payload: dict[str, Any] | None) -> bool:
    if payload is None:
        send_error_response(handler, 400, "Invalid request body")
        return False
    return True


def origin_allowed(origin: str | None, allowed: list[str]) -> bool:
    if not origin:
        return False
    if origin.startswith(EXTENSION_ORIGIN_PREFIX):
        return True
    return origin in allowed


def bearer_token(handler: BaseHTTPRequestHandler) -> str | None:
    header = handler.headers.get("Authorization") or ""
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


def check_api_key(handler: BaseHTTPRequestHandler, api_key: str | None) -> str | None:
    """Return an error message when the request is not authorised."""
    if not handler.headers.get("Authorization"):
        return "Missing Authorization header"
    token = bearer_token(handler)
    if token is None:
        return "Invalid Authorization header format"
    if not api_key or not hmac.compare_digest(token.encode("utf-8"), api_key.encode("utf-8")):
        return "Invalid API key"
    return None


def query_params(query: str) -> dict[str, list[str]]:
    return parse_qs(query, keep_blank_values=False)


def first_param(params: dict[str, list[str]], key: str) -> str | None:
    values = params.get(key)
    if not values:
        return None
    value = values[0].strip()
    return value or None


def tags_param(params: dict[str, list[str]], key: str = "tags") -> list[str]:
    tags: list[str] = []
    for raw in params.get(key, []):
        for tag in split_csv(raw):
            if tag not in tags:
                tags.append(tag)
    return tags


def parse_id(raw: str | None, kind: str) -> int:
    try:
        value = int(raw or "")
    except ValueError:
        raise ValidationError(f"Invalid {kind} ID") from None
    if value < 1:
        raise ValidationError(f"Invalid {kind} ID")
    return value


def optional_id_param(params: dict[str, list[str]], key: str, kind: str) -> int | None:
    raw = first_param(params, key)
    if raw is None:
        return None
    return parse_id(raw, kind)
