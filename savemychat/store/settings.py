from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

from .. import db
from ..deadline import Deadline, checkpoint
from ..models import Settings, XPathConfig
from ..utils import now_iso

if TYPE_CHECKING:
    from ._store import ChatStore

SETTINGS_ID = 1


def row_to_settings(row: sqlite3.Row) -> Settings:
    beast = db.from_json(row["beast_enabled_per_domain"])
    xpaths = db.from_json(row["xpaths_by_domain"])
    return Settings(
        id=SETTINGS_ID,
        storage_mode=row["storage_mode"],
        beast_enabled_per_domain={str(k): bool(v) for k, v in beast.items()},
        selective_mode_enabled=bool(row["selective_mode_enabled"]),
        dev_mode_enabled=bool(row["dev_mode_enabled"]),
        xpaths_by_domain={
            str(domain): XPathConfig(
                conversation=str(paths.get("conversation") or ""),
                message=str(paths.get("message") or ""),
            )
            for domain, paths in xpaths.items()
            if isinstance(paths, dict)
        },
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def find(store: ChatStore) -> Settings | None:
    row = store.conn.execute(
        f"""
        SELECT storage_mode, beast_enabled_per_domain, selective_mode_enabled,
               dev_mode_enabled, xpaths_by_domain, created_at, updated_at
        FROM {store.table("settings")}
        WHERE id = ?
        """,
        (SETTINGS_ID,),
    ).fetchone()
    return row_to_settings(row) if row else None


def get(store: ChatStore, deadline: Deadline | None = None) -> Settings:
    """Return the stored settings, or defaults when nothing was written yet.

    Reading never creates the row.
    """
    with store.guard(deadline):
        settings = find(store)
    return settings if settings is not None else Settings()


def replace(store: ChatStore, settings: Settings, deadline: Deadline | None = None) -> Settings:
    now = now_iso()
    with store.guard(deadline) as conn:
        checkpoint(deadline)
        rows = conn.execute(
            f"""
            INSERT INTO {store.table("settings")}
            (id, storage_mode, beast_enabled_per_domain, selective_mode_enabled,
             dev_mode_enabled, xpaths_by_domain, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                storage_mode = excluded.storage_mode,
                beast_enabled_per_domain = excluded.beast_enabled_per_domain,
                selective_mode_enabled = excluded.selective_mode_enabled,
                dev_mode_enabled = excluded.dev_mode_enabled,
                xpaths_by_domain = excluded.xpaths_by_domain,
                updated_at = excluded.updated_at
            RETURNING created_at, updated_at
            """,
            (
                SETTINGS_ID,
                settings.storage_mode,
                db.to_json(settings.beast_json()),
                int(settings.selective_mode_enabled),
                int(settings.dev_mode_enabled),
                db.to_json(settings.xpaths_json()),
                now,
                now,
            ),
        ).fetchall()
        conn.commit()
    row = rows[0]
    return Settings(
        id=SETTINGS_ID,
        storage_mode=settings.storage_mode,
        beast_enabled_per_domain=settings.beast_json(),
        selective_mode_enabled=settings.selective_mode_enabled,
        dev_mode_enabled=settings.dev_mode_enabled,
        xpaths_by_domain=dict(settings.xpaths_by_domain),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
