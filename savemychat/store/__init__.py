from __future__ import annotations

from ._store import ChatStore
from .query import SEARCH_LIMIT, build_search_query, build_snippet_query
from .types import Reconciled

__all__ = [
    "SEARCH_LIMIT",
    "ChatStore",
    "Reconciled",
    "build_search_query",
    "build_snippet_query",
]
