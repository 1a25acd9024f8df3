"""A1-style address parsing shared by the tabular data sources."""
from __future__ import annotations

from typing import NamedTuple, Optional, Sequence

from openpyxl.utils.cell import range_boundaries

from CELLMIND.interfaces.collaborators import Cell, TabularData
from CELLMIND.interfaces.errors import InvalidAddressError


class CellBounds(NamedTuple):
    """1-based inclusive bounds. None means the range is open on that side (e.g. ``A:A``)."""

    min_col: Optional[int]
    min_row: Optional[int]
    max_col: Optional[int]
    max_row: Optional[int]

    def clamp(self, max_row: int, max_col: int) -> "CellBounds":
        return CellBounds(
            min_col=self.min_col or 1,
            min_row=self.min_row or 1,
            max_col=self.max_col or max_col,
            max_row=self.max_row or max_row,
        )


def parse_address(address: str) -> CellBounds:
    """Parse ``A1``, ``A1:B2``, ``$A$1:$B$2``, ``A:C`` or ``2:5`` into bounds."""
    cleaned = (address or "").strip()
    if not cleaned:
        raise InvalidAddressError(address, "empty address")
    try:
        min_col, min_row, max_col, max_row = range_boundaries(cleaned.upper())
    except (ValueError, TypeError) as exc:
        raise InvalidAddressError(address, exc) from exc

    bounds = CellBounds(min_col, min_row, max_col, max_row)
    # openpyxl reads a bare "ABC" as a whole column; spreadsheets only allow that with a colon
    if ":" not in cleaned and (bounds.min_col is None or bounds.min_row is None):
        raise InvalidAddressError(address, "not a cell address")
    if bounds.min_col and bounds.max_col and bounds.min_col > bounds.max_col:
        raise InvalidAddressError(address, "columns out of order")
    if bounds.min_row and bounds.max_row and bounds.min_row > bounds.max_row:
        raise InvalidAddressError(address, "rows out of order")
    return bounds


def split_scoped_reference(reference: str) -> tuple[str, str]:
    """Split ``Sheet!A1:B2`` at the first ``!`` and unquote ``'My Sheet'``."""
    scope, address = reference.split("!", 1)
    scope = scope.strip()
    if len(scope) >= 2 and scope[0] == scope[-1] == "'":
        scope = scope[1:-1].replace("''", "'")
    return scope, address.strip()


def pad_rows(rows: Sequence[Sequence[Cell]], height: int, width: int) -> TabularData:
    """Pad (or cut) rows to exactly ``height`` x ``width`` cells, filling with None."""
    padded = []
    for row_idx in range(height):
        source = rows[row_idx] if row_idx < len(rows) else ()
        padded.append(tuple(source[col_idx] if col_idx < len(source) else None for col_idx in range(width)))
    return tuple(padded)


def slice_grid(grid: Sequence[Sequence[Cell]], bounds: CellBounds) -> TabularData:
    """Cut a rectangle out of a row-major grid anchored at A1, padding with None."""
    height = len(grid)
    width = max((len(row) for row in grid), default=0)
    box = bounds.clamp(max_row=height, max_col=width)

    rows = []
    for row_idx in range(box.min_row - 1, box.max_row):
        source = grid[row_idx] if row_idx < height else ()
        rows.append(
            tuple(source[col_idx] if col_idx < len(source) else None for col_idx in range(box.min_col - 1, box.max_col))
        )
    return tuple(rows)
