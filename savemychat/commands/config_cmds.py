from __future__ import annotations

import dataclasses
from typing import Any

import typer
from rich import print, print_json

from savemychat.config import (
    SaveMyChatConfig,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
    validate_table_prefix,
    write_config_file,
)
from savemychat.utils import split_csv

_INT_KEYS = {"port", "rate_limit_max"}
_FLOAT_KEYS = {"store_timeout_s"}


def config_show_cmd() -> None:
    """Print the effective configuration (file plus environment)."""

    cfg = load_config()
    payload: dict[str, Any] = dataclasses.asdict(cfg)
    if payload.get("api_key"):
        payload["api_key"] = "***"
    payload["config_path"] = str(get_config_path())
    payload["env_overrides"] = sorted(get_env_overrides())
    print_json(data=payload)


def _coerce(key: str, value: str) -> Any:
    if key in _INT_KEYS:
        return int(value)
    if key in _FLOAT_KEYS:
        return float(value)
    if key == "cors_origins":
        return split_csv(value)
    if key == "table_prefix":
        return validate_table_prefix(value)
    return value


def config_set_cmd(*, key: str, value: str) -> None:
    """Write one key to the config file."""

    known = {f.name for f in dataclasses.fields(SaveMyChatConfig)}
    if key not in known:
        print(f"[red]Unknown config key: {key}[/red]")
        raise typer.Exit(code=1)
    try:
        data = read_config_file()
        data[key] = _coerce(key, value)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from None
    path = write_config_file(data)
    print(f"[green]✓ Set {key} in {path}[/green]")
