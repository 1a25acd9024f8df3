"""Tabular data sources backed by openpyxl workbooks or pandas DataFrames."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Set, Union

import pandas as pd
from openpyxl import Workbook, load_workbook

from CELLMIND.interfaces.collaborators import TabularData, TabularDataSource, freeze_rows
from CELLMIND.interfaces.errors import InvalidAddressError, ScopeNotFoundError
from CELLMIND.tools.addresses import pad_rows, parse_address, slice_grid, split_scoped_reference

logger = logging.getLogger(__name__)


class WorkbookDataSource(TabularDataSource):
    """Reads cell values from an openpyxl workbook; sheets are scopes, defined names are named ranges."""

    def __init__(self, workbook: Workbook, active_sheet: Optional[str] = None) -> None:
        self.workbook = workbook
        if active_sheet is not None and active_sheet not in workbook.sheetnames:
            raise ScopeNotFoundError(active_sheet)
        self._active_sheet = active_sheet or workbook.active.title

    @classmethod
    def from_path(cls, path: Union[str, Path], active_sheet: Optional[str] = None) -> "WorkbookDataSource":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Workbook not found: {path}")
        # data_only so formulas come back as their cached results
        workbook = load_workbook(path, data_only=True)
        return cls(workbook, active_sheet=active_sheet)

    @property
    def default_scope(self) -> Optional[str]:
        return self._active_sheet

    def list_scopes(self) -> Set[str]:
        return set(self.workbook.sheetnames)

    def _sheet(self, scope: Optional[str]):
        name = scope or self._active_sheet
        if name not in self.workbook.sheetnames:
            raise ScopeNotFoundError(name)
        return self.workbook[name]

    def get_values(self, address: str, scope: Optional[str] = None) -> TabularData:
        sheet = self._sheet(scope)
        bounds = parse_address(address).clamp(max_row=sheet.max_row, max_col=sheet.max_column)
        height = bounds.max_row - bounds.min_row + 1
        width = bounds.max_col - bounds.min_col + 1

        # iter_rows creates every cell it visits, so only walk the used area and pad the rest
        last_row = min(bounds.max_row, sheet.max_row)
        last_col = min(bounds.max_col, sheet.max_column)
        rows = []
        if bounds.min_row <= last_row and bounds.min_col <= last_col:
            rows = list(
                sheet.iter_rows(
                    min_row=bounds.min_row,
                    max_row=last_row,
                    min_col=bounds.min_col,
                    max_col=last_col,
                    values_only=True,
                )
            )
        return pad_rows(rows, height, width)

    def _defined_name(self, name: str):
        defined_names = self.workbook.defined_names
        if name in defined_names:
            return defined_names[name]
        # Excel treats defined names case-insensitively
        lowered = name.lower()
        for key, defined in defined_names.items():
            if key.lower() == lowered:
                return defined
        return None

    def get_values_by_name(self, name: str) -> Optional[TabularData]:
        defined = self._defined_name(name)
        if defined is None:
            return None
        destinations = list(defined.destinations)
        if not destinations:
            logger.debug("Defined name %s has no cell destinations", name)
            return None
        sheet_title, coordinate = destinations[0]
        return self.get_values(coordinate.replace("$", ""), scope=sheet_title)

    def used_values(self, scope: Optional[str] = None) -> TabularData:
        sheet = self._sheet(scope)
        return freeze_rows(sheet.iter_rows(values_only=True))


class FrameDataSource(TabularDataSource):
    """Serves pandas DataFrames as sheets. Names map to ``Sheet!A1:B2`` style references."""

    def __init__(
        self,
        frames: Mapping[str, pd.DataFrame],
        names: Optional[Mapping[str, str]] = None,
        default_scope: Optional[str] = None,
        include_header: bool = True,
    ) -> None:
        if not frames:
            raise ValueError("FrameDataSource needs at least one DataFrame")
        self.names: Dict[str, str] = dict(names or {})
        self._grids = {scope: self._to_grid(df, include_header) for scope, df in frames.items()}
        if default_scope is not None and default_scope not in self._grids:
            raise ScopeNotFoundError(default_scope)
        self._default_scope = default_scope or next(iter(self._grids))

    @classmethod
    def from_csv_dir(cls, directory: Union[str, Path], default_scope: Optional[str] = None) -> "FrameDataSource":
        """Load every ``*.csv`` in a directory as a sheet named after the file stem."""
        directory = Path(directory)
        frames = {
            path.stem: pd.read_csv(path, header=None, dtype=object, keep_default_na=False)
            for path in sorted(directory.glob("*.csv"))
        }
        if not frames:
            raise FileNotFoundError(f"No CSV files found in {directory}")
        return cls(frames, default_scope=default_scope, include_header=False)

    @staticmethod
    def _to_grid(df: pd.DataFrame, include_header: bool) -> list:
        cleaned = df.astype(object).where(pd.notna(df), None)
        grid = cleaned.values.tolist()
        if include_header:
            grid.insert(0, [str(column) for column in df.columns])
        # keep_default_na=False leaves blank CSV cells as "", spreadsheets report them as empty
        return [[None if cell == "" else cell for cell in row] for row in grid]

    @property
    def default_scope(self) -> Optional[str]:
        return self._default_scope

    def list_scopes(self) -> Set[str]:
        return set(self._grids)

    def _grid(self, scope: Optional[str]) -> list:
        name = scope or self._default_scope
        if name not in self._grids:
            raise ScopeNotFoundError(name)
        return self._grids[name]

    def get_values(self, address: str, scope: Optional[str] = None) -> TabularData:
        return slice_grid(self._grid(scope), parse_address(address))

    def get_values_by_name(self, name: str) -> Optional[TabularData]:
        target = self.names.get(name)
        if target is None:
            lowered = name.lower()
            target = next((value for key, value in self.names.items() if key.lower() == lowered), None)
        if target is None:
            return None
        if "!" not in target:
            raise InvalidAddressError(target, f'named range "{name}" must point at Sheet!Range')
        scope, address = split_scoped_reference(target)
        return self.get_values(address, scope=scope)

    def used_values(self, scope: Optional[str] = None) -> TabularData:
        return freeze_rows(self._grid(scope))
