"""Bulk import of extension backups.

Items are applied one at a time in a fixed order (collections, then
conversations, then snippets, then settings). A failing item is counted and
skipped; items applied before it stay applied.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..deadline import Deadline
from ..errors import Cancelled, NotFound, SaveMyChatError
from ..models import (
    BACKUP_FORMAT_VERSION,
    BackupData,
    Collection,
    Conversation,
    ImportResult,
    Settings,
    Snippet,
)
from ..utils import now_iso
from . import collections as store_collections
from . import conversations as store_conversations
from . import settings as store_settings
from . import snippets as store_snippets
from .types import Reconciled

if TYPE_CHECKING:
    from ._store import ChatStore

logger = logging.getLogger(__name__)


def _item_key(item: Any, field: str) -> str:
    if isinstance(item, dict) and item.get(field):
        return repr(item[field])
    return "<unnamed>"


def _apply(
    result: ImportResult,
    kind: str,
    key: str,
    step: Callable[[], Reconciled[Any]],
) -> Reconciled[Any] | None:
    try:
        outcome = step()
    except Cancelled:
        raise
    except SaveMyChatError as exc:
        result.errors += 1
        logger.warning("backup import: %s %s failed: %s", kind, key, exc)
        return None
    if outcome.created:
        result.created += 1
    else:
        result.updated += 1
    return outcome


def _resolve_collection_id(
    store: ChatStore,
    collection_id: int,
    collection_ids: dict[int, int],
    deadline: Deadline | None,
) -> int | None:
    if collection_id in collection_ids:
        return collection_ids[collection_id]
    try:
        store_collections.get(store, collection_id, deadline)
    except NotFound:
        logger.warning(
            "backup import: dropping unknown collection_id %s from conversation", collection_id
        )
        return None
    return collection_id


def _import_collection(
    store: ChatStore, item: Any, collection_ids: dict[int, int], deadline: Deadline | None
) -> Reconciled[Collection]:
    incoming = Collection.from_dict(item)
    backup_id = incoming.id
    outcome = store_collections.reconcile(store, incoming, deadline)
    if backup_id is not None and outcome.record.id is not None:
        collection_ids[backup_id] = outcome.record.id
    return outcome


def _import_conversation(
    store: ChatStore,
    item: Any,
    collection_ids: dict[int, int],
    conversation_ids: dict[int, int],
    deadline: Deadline | None,
) -> Reconciled[Conversation]:
    incoming = Conversation.from_dict(item)
    backup_id = incoming.id
    incoming.id = None
    if incoming.collection_id is not None:
        incoming.collection_id = _resolve_collection_id(
            store, incoming.collection_id, collection_ids, deadline
        )
    outcome = store_conversations.reconcile(store, incoming, deadline)
    if backup_id is not None and outcome.record.id is not None:
        conversation_ids[backup_id] = outcome.record.id
    return outcome


def _import_snippet(
    store: ChatStore, item: Any, conversation_ids: dict[int, int], deadline: Deadline | None
) -> Reconciled[Snippet]:
    incoming = Snippet.from_dict(item)
    if incoming.source_conversation_id is not None:
        incoming.source_conversation_id = conversation_ids.get(
            incoming.source_conversation_id, incoming.source_conversation_id
        )
    return Reconciled(store_snippets.create(store, incoming, deadline), created=True)


def _import_settings(
    store: ChatStore, item: dict[str, Any], deadline: Deadline | None
) -> Reconciled[Settings]:
    # The singleton always exists logically, so a restore is always an update.
    replaced = store_settings.replace(store, Settings.from_dict(item), deadline)
    return Reconciled(replaced, created=False)


def import_backup(
    store: ChatStore,
    payload: BackupData | dict[str, Any],
    deadline: Deadline | None = None,
) -> ImportResult:
    backup = payload if isinstance(payload, BackupData) else BackupData.from_dict(payload)
    if backup.version is not None and backup.version != BACKUP_FORMAT_VERSION:
        logger.warning("backup import: unexpected backup version %r", backup.version)

    result = ImportResult()
    collection_ids: dict[int, int] = {}
    conversation_ids: dict[int, int] = {}

    for item in backup.collections:
        _apply(
            result,
            "collection",
            _item_key(item, "name"),
            lambda item=item: _import_collection(store, item, collection_ids, deadline),
        )
    for item in backup.conversations:
        _apply(
            result,
            "conversation",
            _item_key(item, "canonical_url"),
            lambda item=item: _import_conversation(
                store, item, collection_ids, conversation_ids, deadline
            ),
        )
    for item in backup.snippets:
        _apply(
            result,
            "snippet",
            _item_key(item, "title"),
            lambda item=item: _import_snippet(store, item, conversation_ids, deadline),
        )
    if backup.settings is not None:
        settings_item = backup.settings
        _apply(
            result,
            "settings",
            "singleton",
            lambda: _import_settings(store, settings_item, deadline),
        )

    logger.info(
        "backup import finished: created=%d updated=%d errors=%d",
        result.created,
        result.updated,
        result.errors,
    )
    return result


def export_backup(store: ChatStore, deadline: Deadline | None = None) -> dict[str, Any]:
    conversations = store_conversations.list_all(store, deadline)
    snippets = store_snippets.list_all(store, deadline)
    collections = store_collections.list_all(store, deadline)
    with store.guard(deadline):
        settings = store_settings.find(store)
    return {
        "version": BACKUP_FORMAT_VERSION,
        "exported_at": now_iso(),
        "conversations": [conv.to_dict() for conv in conversations],
        "snippets": [snippet.to_dict() for snippet in snippets],
        "collections": [collection.to_dict() for collection in collections],
        "settings": settings.to_dict() if settings is not None else None,
    }
