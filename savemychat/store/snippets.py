from __future__ import annotations

import dataclasses
import sqlite3
from typing import TYPE_CHECKING

from .. import db
from ..deadline import Deadline, checkpoint
from ..errors import NotFound
from ..models import Snippet, SnippetFilters
from ..utils import now_iso
from .query import SNIPPET_COLUMNS, build_snippet_query

if TYPE_CHECKING:
    from ._store import ChatStore

_SELECT = ", ".join(SNIPPET_COLUMNS)


def row_to_snippet(row: sqlite3.Row) -> Snippet:
    return Snippet(
        id=int(row["id"]),
        title=row["title"],
        content=row["content"],
        source_url=row["source_url"],
        source_conversation_id=row["source_conversation_id"],
        tags=[str(tag) for tag in db.from_json_list(row["tags"])],
        language=row["language"],
        created_at=row["created_at"],
    )


def find_by_id(store: ChatStore, snippet_id: int) -> Snippet | None:
    row = store.conn.execute(
        f"SELECT {_SELECT} FROM {store.table('snippets')} WHERE id = ?", (snippet_id,)
    ).fetchone()
    return row_to_snippet(row) if row else None


def get(store: ChatStore, snippet_id: int, deadline: Deadline | None = None) -> Snippet:
    with store.guard(deadline):
        snippet = find_by_id(store, snippet_id)
    if snippet is None:
        raise NotFound("snippet", snippet_id)
    return snippet


def list_filtered(
    store: ChatStore, filters: SnippetFilters, deadline: Deadline | None = None
) -> list[Snippet]:
    sql, args = build_snippet_query(filters, table=store.table("snippets"))
    with store.guard(deadline) as conn:
        rows = conn.execute(sql, args).fetchall()
    return [row_to_snippet(row) for row in rows]


def list_all(store: ChatStore, deadline: Deadline | None = None) -> list[Snippet]:
    with store.guard(deadline) as conn:
        rows = conn.execute(
            f"SELECT {_SELECT} FROM {store.table('snippets')} ORDER BY created_at ASC, id ASC"
        ).fetchall()
    return [row_to_snippet(row) for row in rows]


def create(store: ChatStore, snippet: Snippet, deadline: Deadline | None = None) -> Snippet:
    # Snippets have no natural key: every call inserts a new row.
    snippet.require_fields()
    created = dataclasses.replace(
        snippet, id=None, created_at=snippet.created_at or now_iso(), tags=list(snippet.tags)
    )
    with store.guard(deadline) as conn:
        checkpoint(deadline)
        cur = conn.execute(
            f"""
            INSERT INTO {store.table("snippets")}
            (title, content, source_url, source_conversation_id, tags, language, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                created.title,
                created.content,
                created.source_url,
                created.source_conversation_id,
                db.to_json(created.tags),
                created.language,
                created.created_at,
            ),
        )
        conn.commit()
    created.id = int(cur.lastrowid)
    return created


def update(
    store: ChatStore, snippet_id: int, snippet: Snippet, deadline: Deadline | None = None
) -> Snippet:
    snippet.require_fields()
    with store.guard(deadline) as conn:
        checkpoint(deadline)
        cur = conn.execute(
            f"""
            UPDATE {store.table("snippets")}
            SET title = ?, content = ?, source_url = ?, source_conversation_id = ?,
                tags = ?, language = ?
            WHERE id = ?
            """,
            (
                snippet.title,
                snippet.content,
                snippet.source_url,
                snippet.source_conversation_id,
                db.to_json(list(snippet.tags)),
                snippet.language,
                snippet_id,
            ),
        )
        if cur.rowcount == 0:
            conn.rollback()
            raise NotFound("snippet", snippet_id)
        conn.commit()
        updated = find_by_id(store, snippet_id)
    assert updated is not None
    return updated


def delete(store: ChatStore, snippet_id: int, deadline: Deadline | None = None) -> None:
    with store.guard(deadline) as conn:
        checkpoint(deadline)
        cur = conn.execute(f"DELETE FROM {store.table('snippets')} WHERE id = ?", (snippet_id,))
        if cur.rowcount == 0:
            conn.rollback()
            raise NotFound("snippet", snippet_id)
        conn.commit()
