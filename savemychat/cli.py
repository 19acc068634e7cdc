from __future__ import annotations

import logging

import typer
from rich import print

from . import __version__
from .api import serve as _serve_api
from .commands.browse_cmds import collections_cmd, search_cmd, settings_show_cmd
from .commands.config_cmds import config_set_cmd, config_show_cmd
from .commands.import_export_cmds import export_backup_cmd, import_backup_cmd
from .commands.remote_cmds import push_backup_cmd
from .config import load_config
from .store import ChatStore

app = typer.Typer(help="savemychat: store and reconcile saved AI chat conversations")
settings_app = typer.Typer(help="Extension settings")
config_app = typer.Typer(help="Server configuration")
app.add_typer(settings_app, name="settings")
app.add_typer(config_app, name="config")


def _store(db_path: str | None) -> ChatStore:
    cfg = load_config()
    return ChatStore(db_path or cfg.db_path, table_prefix=cfg.table_prefix)


@app.command()
def version() -> None:
    """Print the installed version."""
    print(__version__)


@app.command()
def init_db(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Create the SQLite database (no-op if it already exists)."""
    store = _store(db_path)
    try:
        print(f"[green]✓ Database ready at {store.db_path}[/green]")
    finally:
        store.close()


@app.command()
def serve(
    host: str = typer.Option(None, help="Host to bind the API server"),
    port: int = typer.Option(None, help="Port to bind the API server"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Run the HTTP API used by the browser extension."""
    cfg = load_config()
    if host:
        cfg.host = host
    if port:
        cfg.port = port
    if db_path:
        cfg.db_path = db_path
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not cfg.api_key:
        print("[yellow]No api_key configured; protected routes will reject every request[/yellow]")
    print(f"[green]Serving on http://{cfg.host}:{cfg.port}[/green]")
    try:
        _serve_api(cfg)
    except KeyboardInterrupt:
        print("\n[dim]Stopped[/dim]")


@app.command("import")
def import_backup(
    input_file: str = typer.Argument(..., help="Backup JSON file (use - for stdin)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    dry_run: bool = typer.Option(False, help="Preview without importing"),
) -> None:
    """Import an extension backup file."""
    import_backup_cmd(
        store_from_path=_store,
        db_path=db_path,
        input_file=input_file,
        dry_run=dry_run,
    )


@app.command("export")
def export_backup(
    output: str = typer.Argument(..., help="Output file (use - for stdout)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Export all data as an extension backup file."""
    export_backup_cmd(store_from_path=_store, db_path=db_path, output=output)


@app.command()
def push(
    input_file: str = typer.Argument(..., help="Backup JSON file (use - for stdin)"),
    url: str = typer.Option("http://127.0.0.1:8080", help="Base URL of the API server"),
    api_key: str = typer.Option(None, envvar="SAVEMYCHAT_API_KEY", help="API key"),
) -> None:
    """Import a backup file through a running API server."""
    push_backup_cmd(input_file=input_file, url=url, api_key=api_key)


@app.command()
def search(
    query: str = typer.Option(None, help="Substring of title, description or content"),
    source: str = typer.Option(None, help="Only conversations from this source"),
    tag: list[str] = typer.Option(None, help="Match any of these tags (repeatable)"),
    collection_id: int = typer.Option(None, help="Only conversations in this collection"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Search saved conversations (newest first)."""
    search_cmd(
        store_from_path=_store,
        db_path=db_path,
        query=query,
        source=source,
        tags=list(tag or []),
        collection_id=collection_id,
    )


@app.command()
def collections(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """List collections."""
    collections_cmd(store_from_path=_store, db_path=db_path)


@settings_app.command("show")
def settings_show(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show the stored extension settings."""
    settings_show_cmd(store_from_path=_store, db_path=db_path)


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration."""
    config_show_cmd()


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key, e.g. port or api_key"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Persist a configuration value to the config file."""
    config_set_cmd(key=key, value=value)


if __name__ == "__main__":
    app()
