from __future__ import annotations

import json
from http.client import HTTPConnection, HTTPSConnection
from typing import Any
from urllib.parse import quote, urlencode, urlparse

DEFAULT_TIMEOUT_S = 10.0


class ApiError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


def build_base_url(address: str) -> str:
    trimmed = address.strip().rstrip("/")
    if not trimmed:
        return ""
    parsed = urlparse(trimmed)
    if parsed.scheme:
        return trimmed
    return f"http://{trimmed}"


def request_json(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    body: Any = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> tuple[int, Any]:
    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError("missing hostname")
    if parsed.scheme == "https":
        conn = HTTPSConnection(parsed.hostname, parsed.port or 443, timeout=timeout_s)
    else:
        conn = HTTPConnection(parsed.hostname, parsed.port or 80, timeout=timeout_s)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    body_bytes = None
    if body is not None:
        body_bytes = json.dumps(body, ensure_ascii=False).encode("utf-8")
    request_headers = {"Accept": "application/json"}
    if body_bytes is not None:
        request_headers["Content-Type"] = "application/json"
        request_headers["Content-Length"] = str(len(body_bytes))
    if headers:
        request_headers.update(headers)
    payload: Any = None
    status: int | None = None
    try:
        conn.request(method, path, body=body_bytes, headers=request_headers)
        resp = conn.getresponse()
        status = int(resp.status)
        raw = resp.read()
        if raw:
            try:
                payload = json.loads(raw.decode("utf-8"))
            except json.JSONDecodeError:
                snippet = raw[:240].decode("utf-8", errors="replace").strip()
                payload = {
                    "error": f"non_json_response: {snippet}" if snippet else "non_json_response"
                }
    finally:
        conn.close()
    assert status is not None
    return status, payload


def _error_message(status: int, payload: Any) -> str:
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return f"request failed with status {status}"


class ApiClient:
    """Thin JSON client for a running savemychat API server."""

    def __init__(
        self, base_url: str, api_key: str | None = None, *, timeout_s: float = DEFAULT_TIMEOUT_S
    ) -> None:
        self.base_url = build_base_url(base_url)
        self.api_key = api_key
        self.timeout_s = timeout_s

    def _request(self, method: str, path: str, body: Any = None) -> Any:
        headers: dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        status, payload = request_json(
            method,
            f"{self.base_url}{path}",
            headers=headers,
            body=body,
            timeout_s=self.timeout_s,
        )
        if not 200 <= status < 300:
            raise ApiError(status, _error_message(status, payload))
        return payload

    def health(self) -> dict[str, Any]:
        return self._request("GET", "/api/health")

    def upsert_conversation(self, conversation: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/api/conversations", conversation)

    def get_conversation_by_url(self, canonical_url: str) -> dict[str, Any]:
        return self._request("GET", f"/api/conversations/url/{quote(canonical_url, safe='')}")

    def search_conversations(
        self,
        *,
        query: str | None = None,
        source: str | None = None,
        tags: list[str] | None = None,
        collection_id: int | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {}
        if query:
            params["q"] = query
        if source:
            params["source"] = source
        if tags:
            params["tags"] = ",".join(tags)
        if collection_id is not None:
            params["collection_id"] = str(collection_id)
        path = "/api/conversations/search"
        if params:
            path = f"{path}?{urlencode(params)}"
        return self._request("GET", path)

    def import_backup(self, backup: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/api/backup/import", backup)

    def get_settings(self) -> dict[str, Any]:
        return self._request("GET", "/api/settings")

    def replace_settings(self, settings: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/api/settings", settings)
