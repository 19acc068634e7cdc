from __future__ import annotations

from typing import Any

from ..api_http import require_body, send_json_response
from ..deadline import Deadline
from ..models import Settings
from ..store import ChatStore


def handle_get(
    handler: Any, store: ChatStore, path: str, query: str, deadline: Deadline
) -> bool:
    if path != "/api/settings":
        return False
    send_json_response(handler, store.get_settings(deadline).to_dict())
    return True


def handle_post(
    handler: Any,
    store: ChatStore,
    path: str,
    payload: dict[str, Any] | None,
    deadline: Deadline,
) -> bool:
    if path != "/api/settings":
        return False
    if not require_body(handler, payload):
        return True
    settings = store.replace_settings(Settings.from_dict(payload), deadline)
    send_json_response(handler, settings.to_dict())
    return True
