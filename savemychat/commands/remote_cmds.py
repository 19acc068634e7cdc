from __future__ import annotations

import typer
from rich import print

from savemychat.client import ApiClient, ApiError
from savemychat.commands.import_export_cmds import read_backup_or_exit


def push_backup_cmd(*, input_file: str, url: str, api_key: str | None) -> None:
    """Send a backup file to a running server's import endpoint."""

    data = read_backup_or_exit(input_file)
    client = ApiClient(url, api_key)
    try:
        result = client.import_backup(data)
    except ApiError as exc:
        print(f"[red]Import failed ({exc.status}): {exc.message}[/red]")
        raise typer.Exit(code=1) from None
    except OSError as exc:
        print(f"[red]Could not reach {client.base_url}: {exc}[/red]")
        raise typer.Exit(code=1) from None
    print(f"[green]✓ Pushed to {client.base_url}[/green]")
    print(f"  Created: {result.get('created', 0)}")
    print(f"  Updated: {result.get('updated', 0)}")
    print(f"  Errors: {result.get('errors', 0)}")
