from __future__ import annotations

import re
from typing import Any
from urllib.parse import unquote

from ..api_http import (
    first_param,
    optional_id_param,
    parse_id,
    query_params,
    require_body,
    send_empty_response,
    send_json_response,
    tags_param,
)
from ..deadline import Deadline
from ..errors import ValidationError
from ..models import Conversation, SearchFilters
from ..store import ChatStore

_ID_PATH = re.compile(r"^/api/conversations/([^/]+)$")
_URL_PATH = re.compile(r"^/api/conversations/url/(.+)$")
_IGNORE_PATH = re.compile(r"^/api/conversations/([^/]+)/ignore$")


def search_filters_from_query(query: str) -> SearchFilters:
    params = query_params(query)
    return SearchFilters(
        query=first_param(params, "q"),
        source=first_param(params, "source"),
        tags=tags_param(params),
        collection_id=optional_id_param(params, "collection_id", "collection"),
    )


def handle_get(
    handler: Any, store: ChatStore, path: str, query: str, deadline: Deadline
) -> bool:
    if path == "/api/conversations/search":
        filters = search_filters_from_query(query)
        results = store.search_conversations(filters, deadline)
        send_json_response(handler, [conv.to_dict() for conv in results])
        return True
    match = _URL_PATH.match(path)
    if match:
        conv = store.get_conversation_by_url(unquote(match.group(1)), deadline)
        send_json_response(handler, conv.to_dict())
        return True
    match = _ID_PATH.match(path)
    if match:
        conv = store.get_conversation(parse_id(match.group(1), "conversation"), deadline)
        send_json_response(handler, conv.to_dict())
        return True
    return False


def handle_post(
    handler: Any,
    store: ChatStore,
    path: str,
    payload: dict[str, Any] | None,
    deadline: Deadline,
) -> bool:
    if path != "/api/conversations":
        return False
    if not require_body(handler, payload):
        return True
    outcome = store.reconcile_conversation(Conversation.from_dict(payload), deadline)
    send_json_response(handler, outcome.record.to_dict(), status=201 if outcome.created else 200)
    return True


def handle_put(
    handler: Any,
    store: ChatStore,
    path: str,
    payload: dict[str, Any] | None,
    deadline: Deadline,
) -> bool:
    match = _IGNORE_PATH.match(path)
    if not match:
        return False
    conversation_id = parse_id(match.group(1), "conversation")
    if not require_body(handler, payload):
        return True
    ignore = payload.get("ignore") if payload else None
    if not isinstance(ignore, bool):
        raise ValidationError("ignore must be a boolean", field="ignore")
    conv = store.set_conversation_ignore(conversation_id, ignore, deadline)
    send_json_response(handler, conv.to_dict())
    return True


def handle_delete(handler: Any, store: ChatStore, path: str, deadline: Deadline) -> bool:
    match = _ID_PATH.match(path)
    if not match:
        return False
    store.delete_conversation(parse_id(match.group(1), "conversation"), deadline)
    send_empty_response(handler)
    return True
