from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

from .config import DEFAULT_DB_PATH, validate_table_prefix

__all__ = [
    "DEFAULT_DB_PATH",
    "connect",
    "from_json",
    "from_json_list",
    "initialize_schema",
    "table_name",
    "to_json",
]

TABLES = ("conversations", "collections", "snippets", "settings")


def connect(db_path: Path | str, check_same_thread: bool = True) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = NORMAL")
    return conn


def _casefold(value: Any) -> str | None:
    # SQLite LIKE only folds ASCII letters.
    if value is None:
        return None
    return str(value).casefold()


def table_name(prefix: str, base: str) -> str:
    if base not in TABLES:
        raise ValueError(f"unknown table: {base}")
    return f"{validate_table_prefix(prefix)}{base}"


def initialize_schema(conn: sqlite3.Connection, prefix: str = "") -> None:
    conversations = table_name(prefix, "conversations")
    collections = table_name(prefix, "collections")
    snippets = table_name(prefix, "snippets")
    settings = table_name(prefix, "settings")
    conn.executescript(
        f"""
        CREATE TABLE IF NOT EXISTS {collections} (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            icon TEXT,
            color TEXT,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_{collections}_created ON {collections}(created_at DESC);

        CREATE TABLE IF NOT EXISTS {conversations} (
            id INTEGER PRIMARY KEY,
            canonical_url TEXT NOT NULL UNIQUE,
            share_url TEXT,
            source TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            content TEXT NOT NULL,
            tags TEXT NOT NULL DEFAULT '[]',
            collection_id INTEGER REFERENCES {collections}(id) ON DELETE SET NULL,
            ignored INTEGER NOT NULL DEFAULT 0,
            version INTEGER NOT NULL DEFAULT 1 CHECK (version >= 1),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_{conversations}_updated ON {conversations}(updated_at DESC);
        CREATE INDEX IF NOT EXISTS idx_{conversations}_source ON {conversations}(source);
        CREATE INDEX IF NOT EXISTS idx_{conversations}_collection ON {conversations}(collection_id);

        CREATE TABLE IF NOT EXISTS {snippets} (
            id INTEGER PRIMARY KEY,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            source_url TEXT,
            source_conversation_id INTEGER,
            tags TEXT NOT NULL DEFAULT '[]',
            language TEXT,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_{snippets}_created ON {snippets}(created_at DESC);
        CREATE INDEX IF NOT EXISTS idx_{snippets}_language ON {snippets}(language);

        CREATE TABLE IF NOT EXISTS {settings} (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            storage_mode TEXT NOT NULL DEFAULT 'local',
            beast_enabled_per_domain TEXT NOT NULL DEFAULT '{{}}',
            selective_mode_enabled INTEGER NOT NULL DEFAULT 0,
            dev_mode_enabled INTEGER NOT NULL DEFAULT 0,
            xpaths_by_domain TEXT NOT NULL DEFAULT '{{}}',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )
    _ensure_column(conn, conversations, "share_url", "TEXT")
    _ensure_column(conn, conversations, "description", "TEXT")
    _ensure_column(conn, snippets, "source_url", "TEXT")
    _ensure_column(conn, snippets, "language", "TEXT")
    conn.commit()


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, column_type: str) -> None:
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    if column in existing:
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")


def to_json(data: Any) -> str:
    if data is None:
        payload: Any = {}
    else:
        payload = data
    return json.dumps(payload, ensure_ascii=False)


def from_json(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def from_json_list(text: str | None) -> list[Any]:
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []
