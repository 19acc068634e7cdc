from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class Reconciled(Generic[T]):
    """Outcome of reconciling one incoming record against the store."""

    record: T
    created: bool
