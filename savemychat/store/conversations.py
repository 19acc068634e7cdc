from __future__ import annotations

import dataclasses
import logging
import sqlite3
from typing import TYPE_CHECKING

from .. import db
from ..deadline import Deadline, checkpoint
from ..errors import NotFound, StoreError, ValidationError
from ..models import Conversation, SearchFilters
from ..utils import now_iso
from .query import CONVERSATION_COLUMNS, build_search_query
from .types import Reconciled

if TYPE_CHECKING:
    from ._store import ChatStore

logger = logging.getLogger(__name__)

# Attempts before giving up on a natural key that keeps changing underneath us.
MAX_RECONCILE_ATTEMPTS = 3

_SELECT = ", ".join(CONVERSATION_COLUMNS)


def row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=int(row["id"]),
        canonical_url=row["canonical_url"],
        share_url=row["share_url"],
        source=row["source"],
        title=row["title"],
        description=row["description"],
        content=row["content"],
        tags=[str(tag) for tag in db.from_json_list(row["tags"])],
        collection_id=row["collection_id"],
        ignore=bool(row["ignored"]),
        version=int(row["version"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def merge_ignore(existing: bool | None, incoming: bool | None) -> bool:
    """Once a conversation is ignored, reconciliation never un-ignores it."""
    if existing:
        return True
    return bool(incoming)


def merge_conversation(existing: Conversation, incoming: Conversation) -> Conversation:
    """Build the row that replaces ``existing`` when ``incoming`` shares its URL."""
    return dataclasses.replace(
        incoming,
        id=existing.id,
        source=existing.source,
        share_url=incoming.share_url or existing.share_url,
        ignore=merge_ignore(existing.ignore, incoming.ignore),
        version=int(existing.version or 1) + 1,
        created_at=existing.created_at,
        tags=list(incoming.tags),
    )


def find_by_url(store: ChatStore, canonical_url: str) -> Conversation | None:
    row = store.conn.execute(
        f"SELECT {_SELECT} FROM {store.table('conversations')} WHERE canonical_url = ?",
        (canonical_url,),
    ).fetchone()
    return row_to_conversation(row) if row else None


def find_by_id(store: ChatStore, conversation_id: int) -> Conversation | None:
    row = store.conn.execute(
        f"SELECT {_SELECT} FROM {store.table('conversations')} WHERE id = ?",
        (conversation_id,),
    ).fetchone()
    return row_to_conversation(row) if row else None


def get(store: ChatStore, conversation_id: int, deadline: Deadline | None = None) -> Conversation:
    with store.guard(deadline):
        conv = find_by_id(store, conversation_id)
    if conv is None:
        raise NotFound("conversation", conversation_id)
    return conv


def get_by_url(
    store: ChatStore, canonical_url: str, deadline: Deadline | None = None
) -> Conversation:
    with store.guard(deadline):
        conv = find_by_url(store, canonical_url)
    if conv is None:
        raise NotFound("conversation", canonical_url)
    return conv


def _raise_for_foreign_key(exc: sqlite3.IntegrityError) -> None:
    if "FOREIGN KEY" in str(exc).upper():
        raise ValidationError(
            "collection_id does not reference an existing collection", field="collection_id"
        ) from exc


def _insert(store: ChatStore, conv: Conversation) -> Conversation:
    now = now_iso()
    created = dataclasses.replace(
        conv,
        ignore=bool(conv.ignore),
        version=conv.version or 1,
        created_at=conv.created_at or now,
        updated_at=conv.updated_at or now,
        tags=list(conv.tags),
    )
    cur = store.conn.execute(
        f"""
        INSERT INTO {store.table("conversations")}
        (canonical_url, share_url, source, title, description, content, tags,
         collection_id, ignored, version, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            created.canonical_url,
            created.share_url,
            created.source,
            created.title,
            created.description,
            created.content,
            db.to_json(created.tags),
            created.collection_id,
            int(bool(created.ignore)),
            created.version,
            created.created_at,
            created.updated_at,
        ),
    )
    created.id = int(cur.lastrowid)
    return created


def _update(store: ChatStore, merged: Conversation, *, expected_version: int) -> bool:
    merged.updated_at = now_iso()
    cur = store.conn.execute(
        f"""
        UPDATE {store.table("conversations")}
        SET share_url = ?, title = ?, description = ?, content = ?, tags = ?,
            collection_id = ?, ignored = ?, version = ?, updated_at = ?
        WHERE id = ? AND version = ?
        """,
        (
            merged.share_url,
            merged.title,
            merged.description,
            merged.content,
            db.to_json(merged.tags),
            merged.collection_id,
            int(bool(merged.ignore)),
            merged.version,
            merged.updated_at,
            merged.id,
            expected_version,
        ),
    )
    return cur.rowcount == 1


def reconcile(
    store: ChatStore, incoming: Conversation, deadline: Deadline | None = None
) -> Reconciled[Conversation]:
    """Create ``incoming`` or fold it into the row sharing its canonical URL.

    The update is a compare-and-swap on the stored version and the create is
    backed by the UNIQUE constraint on canonical_url, so a concurrent writer
    for the same URL turns into a re-read rather than a duplicate row or a
    lost version bump.
    """
    incoming.require_fields()
    url = incoming.canonical_url
    with store.guard(deadline) as conn:
        for _attempt in range(MAX_RECONCILE_ATTEMPTS):
            existing = find_by_url(store, url)
            checkpoint(deadline)
            if existing is None:
                try:
                    created = _insert(store, incoming)
                except sqlite3.IntegrityError as exc:
                    conn.rollback()
                    _raise_for_foreign_key(exc)
                    logger.info("conversation %s created concurrently, retrying as update", url)
                    continue
                conn.commit()
                return Reconciled(created, created=True)

            merged = merge_conversation(existing, incoming)
            try:
                swapped = _update(store, merged, expected_version=int(existing.version or 1))
            except sqlite3.IntegrityError as exc:
                conn.rollback()
                _raise_for_foreign_key(exc)
                raise
            if swapped:
                conn.commit()
                return Reconciled(merged, created=False)
            conn.rollback()
            logger.info("conversation %s changed concurrently, retrying", url)
    raise StoreError(f"conversation {url} kept changing during reconciliation")


def upsert(
    store: ChatStore, incoming: Conversation, deadline: Deadline | None = None
) -> Conversation:
    return reconcile(store, incoming, deadline).record


def set_ignore(
    store: ChatStore, conversation_id: int, ignore: bool, deadline: Deadline | None = None
) -> Conversation:
    with store.guard(deadline) as conn:
        checkpoint(deadline)
        cur = conn.execute(
            f"UPDATE {store.table('conversations')} SET ignored = ?, updated_at = ? WHERE id = ?",
            (int(bool(ignore)), now_iso(), conversation_id),
        )
        if cur.rowcount == 0:
            conn.rollback()
            raise NotFound("conversation", conversation_id)
        conn.commit()
        conv = find_by_id(store, conversation_id)
    assert conv is not None
    return conv


def delete(store: ChatStore, conversation_id: int, deadline: Deadline | None = None) -> None:
    with store.guard(deadline) as conn:
        checkpoint(deadline)
        cur = conn.execute(
            f"DELETE FROM {store.table('conversations')} WHERE id = ?", (conversation_id,)
        )
        if cur.rowcount == 0:
            conn.rollback()
            raise NotFound("conversation", conversation_id)
        conn.commit()


def search(
    store: ChatStore, filters: SearchFilters, deadline: Deadline | None = None
) -> list[Conversation]:
    sql, args = build_search_query(filters, table=store.table("conversations"))
    with store.guard(deadline) as conn:
        rows = conn.execute(sql, args).fetchall()
    return [row_to_conversation(row) for row in rows]


def list_all(store: ChatStore, deadline: Deadline | None = None) -> list[Conversation]:
    with store.guard(deadline) as conn:
        rows = conn.execute(
            f"SELECT {_SELECT} FROM {store.table('conversations')} ORDER BY created_at ASC, id ASC"
        ).fetchall()
    return [row_to_conversation(row) for row in rows]
