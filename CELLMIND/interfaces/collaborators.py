"""Abstract base classes for the collaborators CellMind depends on."""
from __future__ import annotations

import abc
from typing import Any, Optional, Sequence, Set, Tuple

Cell = Any
TabularData = Tuple[Tuple[Cell, ...], ...]

EMPTY_TABLE: TabularData = ()


def freeze_rows(rows: Sequence[Sequence[Cell]]) -> TabularData:
    """Copy a 2D sequence into an immutable tuple-of-tuples table."""
    return tuple(tuple(row) for row in rows)


class TabularDataSource(abc.ABC):
    """Something that can hand out rectangular cell values by address or by name."""

    @property
    @abc.abstractmethod
    def default_scope(self) -> Optional[str]:
        """Scope used for bare addresses when the caller gives none."""

    @abc.abstractmethod
    def get_values(self, address: str, scope: Optional[str] = None) -> TabularData:
        """Return the values at an A1-style address inside a scope."""

    @abc.abstractmethod
    def get_values_by_name(self, name: str) -> Optional[TabularData]:
        """Return the values of a named range, or None when no such name exists."""

    @abc.abstractmethod
    def list_scopes(self) -> Set[str]:
        """Return the names of all scopes (sheets)."""

    @abc.abstractmethod
    def used_values(self, scope: Optional[str] = None) -> TabularData:
        """Return every populated row of a scope."""


class CredentialStore(abc.ABC):
    """Persistent storage for a single opaque API key."""

    @abc.abstractmethod
    def get(self) -> Optional[str]:
        """Return the stored key or None."""

    @abc.abstractmethod
    def set(self, key: str) -> None:
        """Persist a key. Blank keys are rejected with ValueError."""

    @abc.abstractmethod
    def clear(self) -> None:
        """Remove the stored key."""


class OutputSink(abc.ABC):
    """Destination for formatted chain results."""

    @abc.abstractmethod
    def write(self, title: str, formatted: Sequence[Any]) -> str:
        """Persist formatted steps and return a description of where they went."""
