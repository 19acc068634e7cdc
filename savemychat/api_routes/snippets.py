from __future__ import annotations

import re
from typing import Any

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
from ..models import Snippet, SnippetFilters
from ..store import ChatStore

_ID_PATH = re.compile(r"^/api/snippets/([^/]+)$")


def snippet_filters_from_query(query: str) -> SnippetFilters:
    params = query_params(query)
    return SnippetFilters(
        language=first_param(params, "language"),
        tags=tags_param(params),
        source_conversation_id=optional_id_param(
            params, "source_conversation_id", "conversation"
        ),
    )


def handle_get(
    handler: Any, store: ChatStore, path: str, query: str, deadline: Deadline
) -> bool:
    if path == "/api/snippets":
        snippets = store.list_snippets(snippet_filters_from_query(query), deadline)
        send_json_response(handler, [snippet.to_dict() for snippet in snippets])
        return True
    match = _ID_PATH.match(path)
    if match:
        snippet = store.get_snippet(parse_id(match.group(1), "snippet"), deadline)
        send_json_response(handler, snippet.to_dict())
        return True
    return False


def handle_post(
    handler: Any,
    store: ChatStore,
    path: str,
    payload: dict[str, Any] | None,
    deadline: Deadline,
) -> bool:
    if path != "/api/snippets":
        return False
    if not require_body(handler, payload):
        return True
    snippet = store.create_snippet(Snippet.from_dict(payload), deadline)
    send_json_response(handler, snippet.to_dict(), status=201)
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
    snippet_id = parse_id(match.group(1), "snippet")
    if not require_body(handler, payload):
        return True
    snippet = store.update_snippet(snippet_id, Snippet.from_dict(payload), deadline)
    send_json_response(handler, snippet.to_dict())
    return True


def handle_delete(handler: Any, store: ChatStore, path: str, deadline: Deadline) -> bool:
    match = _ID_PATH.match(path)
    if not match:
        return False
    store.delete_snippet(parse_id(match.group(1), "snippet"), deadline)
    send_empty_response(handler)
    return True
