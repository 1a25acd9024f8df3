"""Tests for DataReferenceResolver."""
from __future__ import annotations

from typing import List, Optional, Set

import pytest

from CELLMIND.analysis.references import DataReferenceResolver
from CELLMIND.interfaces.collaborators import TabularData, TabularDataSource
from CELLMIND.interfaces.errors import InvalidAddressError, ScopeNotFoundError
from CELLMIND.tools.addresses import parse_address


class RecordingDataSource(TabularDataSource):
    """Minimal source that records the order of lookups."""

    def __init__(self, names: Optional[dict] = None, broken_names: Optional[Set[str]] = None) -> None:
        self.names = names or {}
        self.broken_names = broken_names or set()
        self.calls: List[tuple] = []

    @property
    def default_scope(self) -> Optional[str]:
        return "Main"

    def list_scopes(self) -> Set[str]:
        return {"Main", "Other"}

    def get_values(self, address: str, scope: Optional[str] = None) -> TabularData:
        self.calls.append(("address", address, scope))
        parse_address(address)
        return ((f"{scope}:{address}",),)

    def get_values_by_name(self, name: str) -> Optional[TabularData]:
        self.calls.append(("name", name))
        if name in self.broken_names:
            raise ScopeNotFoundError("Deleted")
        return self.names.get(name)

    def used_values(self, scope: Optional[str] = None) -> TabularData:
        return ()


def test_empty_reference_returns_empty_table() -> None:
    resolver = DataReferenceResolver(RecordingDataSource())
    assert resolver.resolve("   ") == ()
    assert resolver.resolve(None) == ()


def test_scoped_reference_reads_named_scope() -> None:
    source = RecordingDataSource()
    resolver = DataReferenceResolver(source)
    assert resolver.resolve("Other!A1:B2") == (("Other:A1:B2",),)
    assert source.calls == [("address", "A1:B2", "Other")]


def test_missing_scope_raises_scope_not_found() -> None:
    resolver = DataReferenceResolver(RecordingDataSource())
    with pytest.raises(ScopeNotFoundError) as excinfo:
        resolver.resolve("Sheet2!A1:A3")
    assert excinfo.value.scope == "Sheet2"


def test_scoped_reference_with_bad_address_keeps_original_reference() -> None:
    resolver = DataReferenceResolver(RecordingDataSource())
    with pytest.raises(InvalidAddressError) as excinfo:
        resolver.resolve("Other!nonsense")
    assert excinfo.value.reference == "Other!nonsense"


def test_named_lookup_preferred_over_address() -> None:
    source = RecordingDataSource(names={"B2": (("named",),)})
    resolver = DataReferenceResolver(source)
    assert resolver.resolve("B2") == (("named",),)
    assert source.calls == [("name", "B2")]


def test_bare_address_falls_back_to_current_scope() -> None:
    source = RecordingDataSource()
    resolver = DataReferenceResolver(source)
    assert resolver.resolve("A1:C3", current_scope="Other") == (("Other:A1:C3",),)
    assert resolver.resolve("A1") == (("Main:A1",),)
    assert source.calls[0] == ("name", "A1:C3")


def test_unknown_name_that_is_not_an_address_is_invalid_address() -> None:
    resolver = DataReferenceResolver(RecordingDataSource())
    with pytest.raises(InvalidAddressError) as excinfo:
        resolver.resolve("NoSuchRange")
    assert excinfo.value.reference == "NoSuchRange"


def test_address_error_surfaces_when_named_lookup_also_fails() -> None:
    source = RecordingDataSource(broken_names={"Broken"})
    resolver = DataReferenceResolver(source)
    with pytest.raises(InvalidAddressError):
        resolver.resolve("Broken")


def test_broken_name_still_allows_valid_address() -> None:
    source = RecordingDataSource(broken_names={"A1"})
    resolver = DataReferenceResolver(source)
    assert resolver.resolve("A1") == (("Main:A1",),)


def test_resolution_is_idempotent(frames_source) -> None:
    resolver = DataReferenceResolver(frames_source)
    first = resolver.resolve("Sales!A1:B3")
    second = resolver.resolve("Sales!A1:B3")
    assert first == second == (("region", "total"), ("north", 10), ("south", 20))


def test_frame_source_named_range(frames_source) -> None:
    resolver = DataReferenceResolver(frames_source)
    assert resolver.resolve("Totals") == (("total",), (10,), (20,))


def test_quoted_scope_name() -> None:
    source = RecordingDataSource()
    resolver = DataReferenceResolver(source)
    resolver.resolve("'Other'!A1")
    assert source.calls == [("address", "A1", "Other")]
