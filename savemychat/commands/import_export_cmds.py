from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import typer
from rich import print
from rich.markup import escape

from savemychat.errors import SaveMyChatError
from savemychat.models import BACKUP_FORMAT_VERSION, BackupData


def read_backup_or_exit(input_file: str) -> dict[str, Any]:
    if input_file == "-":
        input_json = sys.stdin.read()
    else:
        input_path = Path(input_file).expanduser()
        if not input_path.exists():
            print(f"[red]Input file not found: {input_path}[/red]")
            raise typer.Exit(code=1)
        input_json = input_path.read_text(encoding="utf-8")
    try:
        data = json.loads(input_json)
    except json.JSONDecodeError as e:
        print(f"[red]Invalid JSON: {e}[/red]")
        raise typer.Exit(code=1) from None
    if not isinstance(data, dict):
        print("[red]Backup must be a JSON object[/red]")
        raise typer.Exit(code=1)
    return data


def print_backup_preview(backup: BackupData) -> None:
    print("[bold]Import Preview[/bold]")
    print(f"- Backup version: {escape(str(backup.version))}")
    print(f"- Exported at: {escape(str(backup.exported_at))}")
    print(f"- Collections: {len(backup.collections)}")
    print(f"- Conversations: {len(backup.conversations)}")
    print(f"- Snippets: {len(backup.snippets)}")
    print(f"- Settings: {'yes' if backup.settings is not None else 'no'}")
    if backup.version is not None and backup.version != BACKUP_FORMAT_VERSION:
        version = escape(repr(backup.version))
        print(f"[yellow]Unexpected backup version {version}; importing anyway[/yellow]")


def import_backup_cmd(
    *,
    store_from_path,
    db_path: str | None,
    input_file: str,
    dry_run: bool,
) -> None:
    """Import an extension backup into the local database."""

    data = read_backup_or_exit(input_file)
    try:
        backup = BackupData.from_dict(data)
    except SaveMyChatError as exc:
        print(f"[red]Invalid backup: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from None

    print_backup_preview(backup)
    if dry_run:
        print("\n[yellow]Dry run - no data will be imported[/yellow]")
        return

    store = store_from_path(db_path)
    try:
        result = store.import_backup(backup)
    finally:
        store.close()
    colour = "green" if result.errors == 0 else "yellow"
    print(f"\n[{colour}]✓ Import complete[/{colour}]")
    print(f"  Created: {result.created}")
    print(f"  Updated: {result.updated}")
    print(f"  Errors: {result.errors}")


def export_backup_cmd(*, store_from_path, db_path: str | None, output: str) -> None:
    """Export everything in the local database as an extension backup."""

    store = store_from_path(db_path)
    try:
        export_data = store.export_backup()
    finally:
        store.close()

    output_json = json.dumps(export_data, ensure_ascii=False, indent=2)
    if output == "-":
        sys.stdout.write(output_json + "\n")
        return
    output_path = Path(output).expanduser()
    output_path.write_text(output_json, encoding="utf-8")
    print(f"[green]✓ Exported to {output_path}[/green]")
    print(f"  Conversations: {len(export_data['conversations'])}")
    print(f"  Snippets: {len(export_data['snippets'])}")
    print(f"  Collections: {len(export_data['collections'])}")
