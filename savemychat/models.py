from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .errors import ValidationError
from .utils import normalize_timestamp

BACKUP_FORMAT_VERSION = "1.0"
DEFAULT_STORAGE_MODE = "local"


def _require_object(data: object, kind: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError(f"{kind} must be an object")
    return data


def _text(data: dict[str, Any], key: str) -> str:
    """Free text is stored exactly as sent."""
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", field=key)
    return value


def _str(data: dict[str, Any], key: str) -> str:
    return _text(data, key).strip()


def _opt_str(data: dict[str, Any], key: str) -> str | None:
    value = _str(data, key)
    return value or None


def _opt_text(data: dict[str, Any], key: str) -> str | None:
    value = _text(data, key)
    return value if value.strip() else None


def _require_text(record: object, names: tuple[str, ...]) -> None:
    for name in names:
        value = getattr(record, name)
        if not value or not value.strip():
            raise ValidationError.missing(name)


def _opt_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{key} must be an integer", field=key)
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", field=key) from None
    # SQLite integers are signed 64-bit.
    if not -(2**63) <= parsed < 2**63:
        raise ValidationError(f"{key} is out of range", field=key)
    return parsed


def _opt_bool(data: dict[str, Any], key: str) -> bool | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean", field=key)
    return value


def normalize_tags(value: object) -> list[str]:
    """Tags are a set: blank entries dropped, duplicates removed, order kept."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("tags must be a list of strings", field="tags")
    tags: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValidationError("tags must be a list of strings", field="tags")
        tag = item.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


@dataclass
class Conversation:
    canonical_url: str = ""
    source: str = ""
    title: str = ""
    content: str = ""
    share_url: str | None = None
    description: str | None = None
    tags: list[str] = field(default_factory=list)
    collection_id: int | None = None
    # None means "not provided"; only persisted records are guaranteed a bool.
    ignore: bool | None = None
    version: int | None = None
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_dict(cls, data: object) -> Conversation:
        payload = _require_object(data, "conversation")
        version = _opt_int(payload, "version")
        if version is not None and version < 1:
            raise ValidationError("version must be a positive integer", field="version")
        return cls(
            canonical_url=_str(payload, "canonical_url"),
            source=_str(payload, "source"),
            title=_text(payload, "title"),
            content=_text(payload, "content"),
            share_url=_opt_str(payload, "share_url"),
            description=_opt_text(payload, "description"),
            tags=normalize_tags(payload.get("tags")),
            collection_id=_opt_int(payload, "collection_id"),
            ignore=_opt_bool(payload, "ignore"),
            version=version,
            id=_opt_int(payload, "id"),
            created_at=normalize_timestamp(payload.get("created_at"), field="created_at"),
            updated_at=normalize_timestamp(payload.get("updated_at"), field="updated_at"),
        )

    def require_fields(self) -> None:
        _require_text(self, ("canonical_url", "source", "title", "content"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "canonical_url": self.canonical_url,
            "share_url": self.share_url,
            "source": self.source,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "tags": list(self.tags),
            "collection_id": self.collection_id,
            "ignore": bool(self.ignore),
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Collection:
    name: str = ""
    icon: str | None = None
    color: str | None = None
    id: int | None = None
    created_at: str | None = None

    @classmethod
    def from_dict(cls, data: object) -> Collection:
        payload = _require_object(data, "collection")
        return cls(
            name=_str(payload, "name"),
            icon=_opt_str(payload, "icon"),
            color=_opt_str(payload, "color"),
            id=_opt_int(payload, "id"),
            created_at=normalize_timestamp(payload.get("created_at"), field="created_at"),
        )

    def require_fields(self) -> None:
        if not self.name:
            raise ValidationError.missing("name")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "created_at": self.created_at,
        }


@dataclass
class Snippet:
    title: str = ""
    content: str = ""
    source_url: str | None = None
    source_conversation_id: int | None = None
    tags: list[str] = field(default_factory=list)
    language: str | None = None
    id: int | None = None
    created_at: str | None = None

    @classmethod
    def from_dict(cls, data: object) -> Snippet:
        payload = _require_object(data, "snippet")
        return cls(
            title=_text(payload, "title"),
            content=_text(payload, "content"),
            source_url=_opt_str(payload, "source_url"),
            source_conversation_id=_opt_int(payload, "source_conversation_id"),
            tags=normalize_tags(payload.get("tags")),
            language=_opt_str(payload, "language"),
            id=_opt_int(payload, "id"),
            created_at=normalize_timestamp(payload.get("created_at"), field="created_at"),
        )

    def require_fields(self) -> None:
        _require_text(self, ("title", "content"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "source_url": self.source_url,
            "source_conversation_id": self.source_conversation_id,
            "tags": list(self.tags),
            "language": self.language,
            "created_at": self.created_at,
        }


@dataclass
class XPathConfig:
    conversation: str = ""
    message: str = ""


@dataclass
class Settings:
    """The extension's configuration, stored as a single row with id 1."""

    storage_mode: str = DEFAULT_STORAGE_MODE
    beast_enabled_per_domain: dict[str, bool] = field(default_factory=dict)
    selective_mode_enabled: bool = False
    dev_mode_enabled: bool = False
    xpaths_by_domain: dict[str, XPathConfig] = field(default_factory=dict)
    id: int = 1
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_dict(cls, data: object) -> Settings:
        payload = _require_object(data, "settings")
        storage_mode = payload.get("storageMode", payload.get("storage_mode"))
        if storage_mode is None:
            storage_mode = DEFAULT_STORAGE_MODE
        if not isinstance(storage_mode, str) or not storage_mode.strip():
            raise ValidationError("storageMode must be a non-empty string", field="storageMode")
        dev_mode = payload.get("devModeEnabled", payload.get("dev_mode_enabled"))
        if dev_mode is not None and not isinstance(dev_mode, bool):
            raise ValidationError("devModeEnabled must be a boolean", field="devModeEnabled")
        return cls(
            storage_mode=storage_mode.strip(),
            beast_enabled_per_domain=_bool_map(payload.get("beast_enabled_per_domain")),
            selective_mode_enabled=bool(_opt_bool(payload, "selective_mode_enabled")),
            dev_mode_enabled=bool(dev_mode),
            xpaths_by_domain=_xpath_map(payload.get("xpaths_by_domain")),
        )

    def beast_json(self) -> dict[str, bool]:
        return dict(self.beast_enabled_per_domain)

    def xpaths_json(self) -> dict[str, dict[str, str]]:
        return {
            domain: {"conversation": cfg.conversation, "message": cfg.message}
            for domain, cfg in self.xpaths_by_domain.items()
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "storageMode": self.storage_mode,
            "beast_enabled_per_domain": self.beast_json(),
            "selective_mode_enabled": self.selective_mode_enabled,
            "devModeEnabled": self.dev_mode_enabled,
            "xpaths_by_domain": self.xpaths_json(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def _bool_map(value: object) -> dict[str, bool]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(
            "beast_enabled_per_domain must be an object", field="beast_enabled_per_domain"
        )
    result: dict[str, bool] = {}
    for domain, enabled in value.items():
        if not isinstance(enabled, bool):
            raise ValidationError(
                f"beast_enabled_per_domain[{domain}] must be a boolean",
                field="beast_enabled_per_domain",
            )
        result[str(domain)] = enabled
    return result


def _xpath_map(value: object) -> dict[str, XPathConfig]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("xpaths_by_domain must be an object", field="xpaths_by_domain")
    result: dict[str, XPathConfig] = {}
    for domain, paths in value.items():
        if not isinstance(paths, dict):
            raise ValidationError(
                f"xpaths_by_domain[{domain}] must be an object", field="xpaths_by_domain"
            )
        result[str(domain)] = XPathConfig(
            conversation=str(paths.get("conversation") or ""),
            message=str(paths.get("message") or ""),
        )
    return result


@dataclass
class SearchFilters:
    query: str | None = None
    source: str | None = None
    tags: list[str] = field(default_factory=list)
    collection_id: int | None = None


@dataclass
class SnippetFilters:
    language: str | None = None
    tags: list[str] = field(default_factory=list)
    source_conversation_id: int | None = None


@dataclass
class ImportResult:
    created: int = 0
    updated: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated + self.errors

    def to_dict(self) -> dict[str, int]:
        return {"created": self.created, "updated": self.updated, "errors": self.errors}


@dataclass
class BackupData:
    """A backup document exported by the browser extension.

    Entity lists hold the raw item payloads; each item is parsed while it is
    imported so that one malformed item cannot fail the whole document.
    """

    version: str | None = None
    exported_at: str | None = None
    conversations: list[Any] = field(default_factory=list)
    snippets: list[Any] = field(default_factory=list)
    collections: list[Any] = field(default_factory=list)
    settings: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: object) -> BackupData:
        payload = _require_object(data, "backup")
        version = payload.get("version")
        if version is not None and not isinstance(version, str):
            raise ValidationError("version must be a string", field="version")
        exported_at = payload.get("exported_at")
        if exported_at is not None and not isinstance(exported_at, str):
            raise ValidationError("exported_at must be a string", field="exported_at")
        lists: dict[str, list[Any]] = {}
        for key in ("conversations", "snippets", "collections"):
            value = payload.get(key)
            if value is None:
                value = []
            if not isinstance(value, list):
                raise ValidationError(f"{key} must be a list", field=key)
            lists[key] = value
        settings = payload.get("settings")
        if settings is not None and not isinstance(settings, dict):
            raise ValidationError("settings must be an object", field="settings")
        return cls(
            version=version,
            exported_at=exported_at,
            conversations=lists["conversations"],
            snippets=lists["snippets"],
            collections=lists["collections"],
            settings=settings,
        )

    @property
    def item_count(self) -> int:
        count = len(self.conversations) + len(self.snippets) + len(self.collections)
        return count + (1 if self.settings is not None else 0)
