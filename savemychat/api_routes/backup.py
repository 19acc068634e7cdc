from __future__ import annotations

from typing import Any

from ..api_http import require_body, send_json_response
from ..deadline import Deadline
from ..store import ChatStore


def handle_get(
    handler: Any, store: ChatStore, path: str, query: str, deadline: Deadline
) -> bool:
    if path != "/api/backup/export":
        return False
    send_json_response(handler, store.export_backup(deadline))
    return True


def handle_post(
    handler: Any,
    store: ChatStore,
    path: str,
    payload: dict[str, Any] | None,
    deadline: Deadline,
) -> bool:
    if path != "/api/backup/import":
        return False
    if not require_body(handler, payload):
        return True
    result = store.import_backup(payload, deadline)
    send_json_response(handler, result.to_dict())
    return True
