from __future__ import annotations

import json
import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/savemychat/config.json").expanduser()
DEFAULT_DB_PATH = Path.home() / ".savemychat.sqlite"

CONFIG_ENV_OVERRIDES = {
    "db_path": "SAVEMYCHAT_DB",
    "table_prefix": "SAVEMYCHAT_TABLE_PREFIX",
    "host": "SAVEMYCHAT_HOST",
    "port": "SAVEMYCHAT_PORT",
    "api_key": "SAVEMYCHAT_API_KEY",
    "cors_origins": "SAVEMYCHAT_CORS_ORIGINS",
    "rate_limit_max": "SAVEMYCHAT_RATE_LIMIT_MAX",
    "store_timeout_s": "SAVEMYCHAT_STORE_TIMEOUT_S",
    "log_level": "SAVEMYCHAT_LOG_LEVEL",
}

_INT_KEYS = {"port", "rate_limit_max"}
_FLOAT_KEYS = {"store_timeout_s"}
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("SAVEMYCHAT_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


def validate_table_prefix(prefix: str) -> str:
    """Return ``prefix`` if it is safe to interpolate into SQL identifiers."""
    if prefix and not _IDENTIFIER_RE.match(prefix):
        raise ValueError(f"invalid table prefix: {prefix!r}")
    return prefix


@dataclass
class SaveMyChatConfig:
    db_path: str = str(DEFAULT_DB_PATH)
    # Trusted, process-level identifier; never taken from request data.
    table_prefix: str = ""
    host: str = "127.0.0.1"
    port: int = 8080
    api_key: str | None = None
    cors_origins: list[str] = field(default_factory=list)
    rate_limit_max: int = 100
    store_timeout_s: float = 30.0
    log_level: str = "INFO"


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_str_list(value: object, *, key: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        items: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                items.append(item.strip())
        return items
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    warnings.warn(f"Invalid list for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def load_config(path: Path | None = None) -> SaveMyChatConfig:
    cfg = SaveMyChatConfig()
    try:
        data = read_config_file(path)
    except ValueError as exc:
        warnings.warn(f"Ignoring config file: {exc}", RuntimeWarning, stacklevel=2)
        data = {}
    cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    validate_table_prefix(cfg.table_prefix)
    return cfg


def _apply_dict(cfg: SaveMyChatConfig, data: dict[str, Any]) -> SaveMyChatConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key == "cors_origins":
            parsed = _coerce_str_list(value, key=key)
            if parsed is not None:
                cfg.cors_origins = parsed
            continue
        setattr(cfg, key, value)
    return cfg


def _apply_env(cfg: SaveMyChatConfig) -> SaveMyChatConfig:
    cfg.db_path = os.getenv("SAVEMYCHAT_DB", cfg.db_path)
    cfg.table_prefix = os.getenv("SAVEMYCHAT_TABLE_PREFIX", cfg.table_prefix)
    cfg.host = os.getenv("SAVEMYCHAT_HOST", cfg.host)
    cfg.port = _parse_int(os.getenv("SAVEMYCHAT_PORT"), cfg.port, key="port")
    cfg.api_key = os.getenv("SAVEMYCHAT_API_KEY", cfg.api_key)
    cfg.rate_limit_max = _parse_int(
        os.getenv("SAVEMYCHAT_RATE_LIMIT_MAX"), cfg.rate_limit_max, key="rate_limit_max"
    )
    cfg.store_timeout_s = _parse_float(
        os.getenv("SAVEMYCHAT_STORE_TIMEOUT_S"), cfg.store_timeout_s, key="store_timeout_s"
    )
    cfg.log_level = os.getenv("SAVEMYCHAT_LOG_LEVEL", cfg.log_level)
    origins = _coerce_str_list(os.getenv("SAVEMYCHAT_CORS_ORIGINS"), key="cors_origins")
    if origins is not None:
        cfg.cors_origins = origins
    return cfg
