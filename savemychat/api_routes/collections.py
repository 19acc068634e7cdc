from __future__ import annotations

import re
from typing import Any

from ..api_http import parse_id, require_body, send_empty_response, send_json_response
from ..deadline import Deadline
from ..models import Collection
from ..store import ChatStore

_ID_PATH = re.compile(r"^/api/collections/([^/]+)$")


def handle_get(
    handler: Any, store: ChatStore, path: str, query: str, deadline: Deadline
) -> bool:
    if path == "/api/collections":
        collections = store.list_collections(deadline)
        send_json_response(handler, [collection.to_dict() for collection in collections])
        return True
    match = _ID_PATH.match(path)
    if match:
        collection = store.get_collection(parse_id(match.group(1), "collection"), deadline)
        send_json_response(handler, collection.to_dict())
        return True
    return False


def handle_post(
    handler: Any,
    store: ChatStore,
    path: str,
    payload: dict[str, Any] | None,
    deadline: Deadline,
) -> bool:
    if path != "/api/collections":
        return False
    if not require_body(handler, payload):
        return True
    outcome = store.reconcile_collection(Collection.from_dict(payload), deadline)
    send_json_response(handler, outcome.record.to_dict(), status=201 if outcome.created else 200)
    return True


def handle_put(
    handler: Any,
    store: ChatStore,
    path: str,
    payload: dict[str, Any] | None,
    deadline: Deadline,
) -> bool:
    match = _ID_PATH.match(path)
    if not match:
        return False
    collection_id = parse_id(match.group(1), "collection")
    if not require_body(handler, payload):
        return True
    collection = store.update_collection(collection_id, Collection.from_dict(payload), deadline)
    send_json_response(handler, collection.to_dict())
    return True


def handle_delete(handler: Any, store: ChatStore, path: str, deadline: Deadline) -> bool:
    match = _ID_PATH.match(path)
    if not match:
        return False
    store.delete_collection(parse_id(match.group(1), "collection"), deadline)
    send_empty_response(handler)
    return True
