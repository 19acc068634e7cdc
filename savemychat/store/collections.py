from __future__ import annotations

import dataclasses
import logging
import sqlite3
from typing import TYPE_CHECKING

from ..deadline import Deadline, checkpoint
from ..errors import NotFound, StoreError, ValidationError
from ..models import Collection
from ..utils import now_iso
from .types import Reconciled

if TYPE_CHECKING:
    from ._store import ChatStore

logger = logging.getLogger(__name__)

MAX_RECONCILE_ATTEMPTS = 3

_SELECT = "id, name, icon, color, created_at"


def row_to_collection(row: sqlite3.Row) -> Collection:
    return Collection(
        id=int(row["id"]),
        name=row["name"],
        icon=row["icon"],
        color=row["color"],
        created_at=row["created_at"],
    )


def find_by_name(store: ChatStore, name: str) -> Collection | None:
    row = store.conn.execute(
        f"SELECT {_SELECT} FROM {store.table('collections')} WHERE name = ?", (name,)
    ).fetchone()
    return row_to_collection(row) if row else None


def find_by_id(store: ChatStore, collection_id: int) -> Collection | None:
    row = store.conn.execute(
        f"SELECT {_SELECT} FROM {store.table('collections')} WHERE id = ?", (collection_id,)
    ).fetchone()
    return row_to_collection(row) if row else None


def get(store: ChatStore, collection_id: int, deadline: Deadline | None = None) -> Collection:
    with store.guard(deadline):
        collection = find_by_id(store, collection_id)
    if collection is None:
        raise NotFound("collection", collection_id)
    return collection


def list_all(store: ChatStore, deadline: Deadline | None = None) -> list[Collection]:
    with store.guard(deadline) as conn:
        rows = conn.execute(
            f"SELECT {_SELECT} FROM {store.table('collections')} ORDER BY created_at DESC, id DESC"
        ).fetchall()
    return [row_to_collection(row) for row in rows]


def reconcile(
    store: ChatStore, incoming: Collection, deadline: Deadline | None = None
) -> Reconciled[Collection]:
    """Create ``incoming`` or refresh icon/color on the collection with its name."""
    incoming.require_fields()
    name = incoming.name
    with store.guard(deadline) as conn:
        for _attempt in range(MAX_RECONCILE_ATTEMPTS):
            existing = find_by_name(store, name)
            checkpoint(deadline)
            if existing is None:
                created = dataclasses.replace(incoming, created_at=incoming.created_at or now_iso())
                try:
                    cur = conn.execute(
                        f"""
                        INSERT INTO {store.table("collections")} (name, icon, color, created_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (created.name, created.icon, created.color, created.created_at),
                    )
                except sqlite3.IntegrityError:
                    conn.rollback()
                    logger.info("collection %r created concurrently, retrying as update", name)
                    continue
                conn.commit()
                created.id = int(cur.lastrowid)
                return Reconciled(created, created=True)

            updated = dataclasses.replace(existing, icon=incoming.icon, color=incoming.color)
            cur = conn.execute(
                f"UPDATE {store.table('collections')} SET icon = ?, color = ? WHERE id = ?",
                (updated.icon, updated.color, updated.id),
            )
            if cur.rowcount == 0:
                conn.rollback()
                logger.info("collection %r deleted concurrently, retrying", name)
                continue
            conn.commit()
            return Reconciled(updated, created=False)
    raise StoreError(f"collection {name!r} kept changing during reconciliation")


def upsert(
    store: ChatStore, incoming: Collection, deadline: Deadline | None = None
) -> Collection:
    return reconcile(store, incoming, deadline).record


def update(
    store: ChatStore,
    collection_id: int,
    incoming: Collection,
    deadline: Deadline | None = None,
) -> Collection:
    incoming.require_fields()
    with store.guard(deadline) as conn:
        checkpoint(deadline)
        try:
            cur = conn.execute(
                f"UPDATE {store.table('collections')} SET name = ?, icon = ?, color = ? WHERE id = ?",
                (incoming.name, incoming.icon, incoming.color, collection_id),
            )
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise ValidationError(
                f"collection name already exists: {incoming.name}", field="name"
            ) from exc
        if cur.rowcount == 0:
            conn.rollback()
            raise NotFound("collection", collection_id)
        conn.commit()
        collection = find_by_id(store, collection_id)
    assert collection is not None
    return collection


def delete(store: ChatStore, collection_id: int, deadline: Deadline | None = None) -> None:
    with store.guard(deadline) as conn:
        checkpoint(deadline)
        cur = conn.execute(
            f"DELETE FROM {store.table('collections')} WHERE id = ?", (collection_id,)
        )
        if cur.rowcount == 0:
            conn.rollback()
            raise NotFound("collection", collection_id)
        conn.commit()
