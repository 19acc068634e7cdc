from __future__ import annotations

import typer
from rich import print, print_json
from rich.markup import escape
from rich.table import Table

from savemychat.models import SearchFilters


def search_cmd(
    *,
    store_from_path,
    db_path: str | None,
    query: str | None,
    source: str | None,
    tags: list[str],
    collection_id: int | None,
) -> None:
    """Search saved conversations."""

    store = store_from_path(db_path)
    try:
        results = store.search_conversations(
            SearchFilters(query=query, source=source, tags=tags, collection_id=collection_id)
        )
    finally:
        store.close()
    if not results:
        print("[yellow]No conversations found[/yellow]")
        raise typer.Exit(code=0)
    table = Table("id", "source", "title", "tags", "updated")
    for conv in results:
        table.add_row(
            str(conv.id),
            escape(conv.source),
            escape(conv.title) + (" [dim](ignored)[/dim]" if conv.ignore else ""),
            escape(", ".join(conv.tags)),
            conv.updated_at or "",
        )
    print(table)


def collections_cmd(*, store_from_path, db_path: str | None) -> None:
    """List collections."""

    store = store_from_path(db_path)
    try:
        collections = store.list_collections()
    finally:
        store.close()
    if not collections:
        print("[yellow]No collections[/yellow]")
        return
    table = Table("id", "name", "icon", "color", "created")
    for collection in collections:
        table.add_row(
            str(collection.id),
            escape(collection.name),
            collection.icon or "",
            collection.color or "",
            collection.created_at or "",
        )
    print(table)


def settings_show_cmd(*, store_from_path, db_path: str | None) -> None:
    """Print the stored extension settings."""

    store = store_from_path(db_path)
    try:
        settings = store.get_settings()
    finally:
        store.close()
    print_json(data=settings.to_dict())
