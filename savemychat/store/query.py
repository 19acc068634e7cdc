"""Parameterised SELECT construction over a closed set of predicate kinds.

Only three predicate kinds exist: column equality, case-insensitive
substring match across one or more columns, and tag-set overlap against a
JSON array column. User-supplied values only ever travel as bound
parameters; identifiers come from code or from the validated table prefix.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..models import SearchFilters, SnippetFilters

SEARCH_LIMIT = 100

CONVERSATION_COLUMNS = (
    "id",
    "canonical_url",
    "share_url",
    "source",
    "title",
    "description",
    "content",
    "tags",
    "collection_id",
    "ignored",
    "version",
    "created_at",
    "updated_at",
)
SNIPPET_COLUMNS = (
    "id",
    "title",
    "content",
    "source_url",
    "source_conversation_id",
    "tags",
    "language",
    "created_at",
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _identifier(name: str) -> str:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"invalid identifier: {name!r}")
    return name


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class Equals:
    column: str
    value: Any


@dataclass(frozen=True)
class Contains:
    columns: tuple[str, ...]
    needle: str


@dataclass(frozen=True)
class Overlaps:
    column: str
    values: tuple[str, ...]


Predicate = Equals | Contains | Overlaps


class SelectQuery:
    def __init__(self, table: str, columns: Sequence[str]) -> None:
        self.table = _identifier(table)
        self.columns = tuple(_identifier(column) for column in columns)
        self._predicates: list[Predicate] = []
        self._order_by: list[str] = []
        self._limit: int | None = None

    def where(self, predicate: Predicate) -> SelectQuery:
        if isinstance(predicate, Overlaps) and not predicate.values:
            raise ValueError("overlap predicate needs at least one value")
        self._predicates.append(predicate)
        return self

    def order_by(self, *columns: str, descending: bool = True) -> SelectQuery:
        direction = "DESC" if descending else "ASC"
        self._order_by.extend(f"{_identifier(column)} {direction}" for column in columns)
        return self

    def limit(self, value: int) -> SelectQuery:
        if value < 1:
            raise ValueError("limit must be positive")
        self._limit = int(value)
        return self

    def build(self) -> tuple[str, list[Any]]:
        args: list[Any] = []
        clauses = [self._render(predicate, args) for predicate in self._predicates]
        sql = f"SELECT {', '.join(self.columns)} FROM {self.table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if self._order_by:
            sql += " ORDER BY " + ", ".join(self._order_by)
        if self._limit is not None:
            sql += f" LIMIT {self._limit}"
        return sql, args

    def _render(self, predicate: Predicate, args: list[Any]) -> str:
        if isinstance(predicate, Equals):
            args.append(predicate.value)
            return f"{_identifier(predicate.column)} = ?{len(args)}"
        if isinstance(predicate, Contains):
            # One bound parameter, referenced once per column.
            args.append(f"%{escape_like(predicate.needle)}%")
            pos = len(args)
            parts = [
                f"casefold({_identifier(column)}) LIKE casefold(?{pos}) ESCAPE '\\'"
                for column in predicate.columns
            ]
            return "(" + " OR ".join(parts) + ")"
        if isinstance(predicate, Overlaps):
            placeholders: list[str] = []
            for value in predicate.values:
                args.append(value)
                placeholders.append(f"?{len(args)}")
            column = f"{self.table}.{_identifier(predicate.column)}"
            return (
                f"EXISTS (SELECT 1 FROM json_each({column}) "
                f"WHERE json_each.value IN ({', '.join(placeholders)}))"
            )
        raise TypeError(f"unsupported predicate: {predicate!r}")


def _tag_values(tags: Sequence[str] | None) -> tuple[str, ...]:
    return tuple(sorted({tag.strip() for tag in tags or () if tag and tag.strip()}))


def build_search_query(filters: SearchFilters, *, table: str) -> tuple[str, list[Any]]:
    query = SelectQuery(table, CONVERSATION_COLUMNS)
    needle = (filters.query or "").strip()
    if needle:
        query.where(Contains(("title", "description", "content"), needle))
    source = (filters.source or "").strip()
    if source:
        query.where(Equals("source", source))
    tags = _tag_values(filters.tags)
    if tags:
        query.where(Overlaps("tags", tags))
    if filters.collection_id is not None:
        query.where(Equals("collection_id", int(filters.collection_id)))
    return query.order_by("updated_at", "id").limit(SEARCH_LIMIT).build()


def build_snippet_query(filters: SnippetFilters, *, table: str) -> tuple[str, list[Any]]:
    query = SelectQuery(table, SNIPPET_COLUMNS)
    language = (filters.language or "").strip()
    if language:
        query.where(Equals("language", language))
    tags = _tag_values(filters.tags)
    if tags:
        query.where(Overlaps("tags", tags))
    if filters.source_conversation_id is not None:
        query.where(Equals("source_conversation_id", int(filters.source_conversation_id)))
    return query.order_by("created_at", "id").limit(SEARCH_LIMIT).build()
