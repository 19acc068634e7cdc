from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .. import db
from ..config import SaveMyChatConfig, validate_table_prefix
from ..deadline import Deadline
from ..errors import SaveMyChatError, StoreError
from ..models import (
    BackupData,
    Collection,
    Conversation,
    ImportResult,
    SearchFilters,
    Settings,
    Snippet,
    SnippetFilters,
)
from . import backup as store_backup
from . import collections as store_collections
from . import conversations as store_conversations
from . import settings as store_settings
from . import snippets as store_snippets
from .types import Reconciled

# SQLite VM instructions between deadline checks while a statement runs.
PROGRESS_INTERVAL = 1000


class ChatStore:
    def __init__(
        self,
        db_path: Path | str = db.DEFAULT_DB_PATH,
        *,
        table_prefix: str = "",
        check_same_thread: bool = True,
        initialize: bool = True,
    ):
        self.db_path = Path(db_path).expanduser()
        self.table_prefix = validate_table_prefix(table_prefix)
        self.conn = db.connect(self.db_path, check_same_thread=check_same_thread)
        if initialize:
            db.initialize_schema(self.conn, self.table_prefix)

    @classmethod
    def from_config(cls, cfg: SaveMyChatConfig, **kwargs: Any) -> ChatStore:
        return cls(cfg.db_path, table_prefix=cfg.table_prefix, **kwargs)

    def __enter__(self) -> ChatStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def table(self, base: str) -> str:
        return db.table_name(self.table_prefix, base)

    def _abort(self, deadline: Deadline | None) -> None:
        if deadline is not None:
            self.conn.set_progress_handler(None, 0)
        if self.conn.in_transaction:
            self.conn.rollback()

    @contextmanager
    def guard(self, deadline: Deadline | None = None) -> Iterator[sqlite3.Connection]:
        """Run store work under ``deadline`` and translate SQLite failures.

        Any open transaction is rolled back on failure, so an interrupted or
        failed write never leaves a partial change behind.
        """
        if deadline is not None:
            deadline.check()
            self.conn.set_progress_handler(deadline.should_abort, PROGRESS_INTERVAL)
        try:
            yield self.conn
        except SaveMyChatError:
            self._abort(deadline)
            raise
        except sqlite3.Error as exc:
            self._abort(deadline)
            if deadline is not None and deadline.should_abort():
                raise deadline.error() from exc
            raise StoreError(str(exc)) from exc
        finally:
            if deadline is not None:
                self.conn.set_progress_handler(None, 0)

    def ping(self, deadline: Deadline | None = None) -> bool:
        with self.guard(deadline) as conn:
            row = conn.execute("SELECT 1").fetchone()
        return bool(row and row[0] == 1)

    # Conversations

    def get_conversation(
        self, conversation_id: int, deadline: Deadline | None = None
    ) -> Conversation:
        return store_conversations.get(self, conversation_id, deadline)

    def get_conversation_by_url(
        self, canonical_url: str, deadline: Deadline | None = None
    ) -> Conversation:
        return store_conversations.get_by_url(self, canonical_url, deadline)

    def reconcile_conversation(
        self, incoming: Conversation, deadline: Deadline | None = None
    ) -> Reconciled[Conversation]:
        return store_conversations.reconcile(self, incoming, deadline)

    def upsert_conversation(
        self, incoming: Conversation, deadline: Deadline | None = None
    ) -> Conversation:
        return store_conversations.upsert(self, incoming, deadline)

    def set_conversation_ignore(
        self, conversation_id: int, ignore: bool, deadline: Deadline | None = None
    ) -> Conversation:
        return store_conversations.set_ignore(self, conversation_id, ignore, deadline)

    def delete_conversation(self, conversation_id: int, deadline: Deadline | None = None) -> None:
        store_conversations.delete(self, conversation_id, deadline)

    def search_conversations(
        self, filters: SearchFilters | None = None, deadline: Deadline | None = None
    ) -> list[Conversation]:
        return store_conversations.search(self, filters or SearchFilters(), deadline)

    # Collections

    def get_collection(self, collection_id: int, deadline: Deadline | None = None) -> Collection:
        return store_collections.get(self, collection_id, deadline)

    def list_collections(self, deadline: Deadline | None = None) -> list[Collection]:
        return store_collections.list_all(self, deadline)

    def reconcile_collection(
        self, incoming: Collection, deadline: Deadline | None = None
    ) -> Reconciled[Collection]:
        return store_collections.reconcile(self, incoming, deadline)

    def upsert_collection(
        self, incoming: Collection, deadline: Deadline | None = None
    ) -> Collection:
        return store_collections.upsert(self, incoming, deadline)

    def update_collection(
        self, collection_id: int, incoming: Collection, deadline: Deadline | None = None
    ) -> Collection:
        return store_collections.update(self, collection_id, incoming, deadline)

    def delete_collection(self, collection_id: int, deadline: Deadline | None = None) -> None:
        store_collections.delete(self, collection_id, deadline)

    # Snippets

    def get_snippet(self, snippet_id: int, deadline: Deadline | None = None) -> Snippet:
        return store_snippets.get(self, snippet_id, deadline)

    def list_snippets(
        self, filters: SnippetFilters | None = None, deadline: Deadline | None = None
    ) -> list[Snippet]:
        return store_snippets.list_filtered(self, filters or SnippetFilters(), deadline)

    def create_snippet(self, snippet: Snippet, deadline: Deadline | None = None) -> Snippet:
        return store_snippets.create(self, snippet, deadline)

    def update_snippet(
        self, snippet_id: int, snippet: Snippet, deadline: Deadline | None = None
    ) -> Snippet:
        return store_snippets.update(self, snippet_id, snippet, deadline)

    def delete_snippet(self, snippet_id: int, deadline: Deadline | None = None) -> None:
        store_snippets.delete(self, snippet_id, deadline)

    # Settings

    def get_settings(self, deadline: Deadline | None = None) -> Settings:
        return store_settings.get(self, deadline)

    def replace_settings(self, settings: Settings, deadline: Deadline | None = None) -> Settings:
        return store_settings.replace(self, settings, deadline)

    # Backups

    def import_backup(
        self, payload: BackupData | dict[str, Any], deadline: Deadline | None = None
    ) -> ImportResult:
        return store_backup.import_backup(self, payload, deadline)

    def export_backup(self, deadline: Deadline | None = None) -> dict[str, Any]:
        return store_backup.export_backup(self, deadline)
