"""Resolution of user-typed data references into tabular values."""
from __future__ import annotations

import logging
from typing import Optional

from CELLMIND.interfaces.collaborators import EMPTY_TABLE, TabularData, TabularDataSource
from CELLMIND.interfaces.errors import (
    InvalidAddressError,
    ReferenceResolutionError,
    ScopeNotFoundError,
)
from CELLMIND.tools.addresses import split_scoped_reference

logger = logging.getLogger(__name__)

SCOPE_SEPARATOR = "!"


class DataReferenceResolver:
    """Turns ``Sheet1!A1:F20``, ``MyRange`` or ``A1:D10`` into cell values.

    Resolution order is fixed: a reference containing ``!`` is a scoped
    address; anything else is first looked up as a named range and only then
    read as an address in the current scope.
    """

    def __init__(self, data_source: TabularDataSource) -> None:
        self.data_source = data_source

    def resolve(self, reference: Optional[str], current_scope: Optional[str] = None) -> TabularData:
        cleaned = "" if reference is None else str(reference).strip()
        if not cleaned:
            return EMPTY_TABLE

        if SCOPE_SEPARATOR in cleaned:
            return self._resolve_scoped(cleaned)

        named, named_error = self._lookup_name(cleaned)
        if named is not None:
            logger.debug("Reference %r resolved as named range", cleaned)
            return named

        try:
            return self._address_lookup(cleaned, current_scope)
        except InvalidAddressError:
            if named_error is not None:
                logger.debug("Named lookup for %r also failed: %s", cleaned, named_error)
            raise

    def _resolve_scoped(self, reference: str) -> TabularData:
        scope, address = split_scoped_reference(reference)
        if scope not in self.data_source.list_scopes():
            raise ScopeNotFoundError(scope)
        try:
            return self.data_source.get_values(address, scope=scope)
        except InvalidAddressError as exc:
            raise InvalidAddressError(reference, exc.cause or exc) from exc
        except Exception as exc:  # source-specific failures still count as a bad address
            raise InvalidAddressError(reference, exc) from exc

    def _lookup_name(self, name: str):
        try:
            return self.data_source.get_values_by_name(name), None
        except ReferenceResolutionError as exc:
            # a broken name must not hide a real address error, so fall through
            return None, exc

    def _address_lookup(self, address: str, current_scope: Optional[str]) -> TabularData:
        scope = current_scope or self.data_source.default_scope
        try:
            return self.data_source.get_values(address, scope=scope)
        except InvalidAddressError:
            raise
        except Exception as exc:
            raise InvalidAddressError(address, exc) from exc
