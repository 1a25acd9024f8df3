"""Output sinks that persist formatted chain results."""
from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font

from CELLMIND.interfaces.collaborators import OutputSink
from CELLMIND.writing.formatter import FormattedStep, ResultFormatter

logger = logging.getLogger(__name__)

# Excel rejects sheet titles longer than 31 characters
MAX_SHEET_TITLE = 31


def timestamped_title(prefix: str, now: Optional[datetime.datetime] = None) -> str:
    now = now or datetime.datetime.now()
    return f"{prefix} {now:%Y-%m-%d %H.%M.%S}"[:MAX_SHEET_TITLE]


def unique_sheet_title(workbook: Workbook, title: str) -> str:
    candidate = title[:MAX_SHEET_TITLE]
    counter = 2
    while candidate in workbook.sheetnames:
        suffix = f" ({counter})"
        candidate = title[: MAX_SHEET_TITLE - len(suffix)] + suffix
        counter += 1
    return candidate


MACRO_SUFFIXES = {".xlsm", ".xltm"}


def open_for_update(workbook_path: Path) -> Workbook:
    """Open a workbook that will be saved back in place, keeping any VBA project."""
    workbook_path = Path(workbook_path)
    macro_enabled = workbook_path.suffix.lower() in MACRO_SUFFIXES
    if workbook_path.exists():
        return load_workbook(workbook_path, keep_vba=macro_enabled)
    if macro_enabled:
        # a fresh openpyxl workbook has no VBA part, saving it as .xlsm gives a file Excel rejects
        raise FileNotFoundError(f"Macro-enabled workbook not found: {workbook_path}")
    return Workbook()


class WorkbookSheetSink(OutputSink):
    """Writes results into a new sheet of an existing (or new) workbook. Macros in .xlsm files are kept."""

    def __init__(self, workbook_path: Path, formatter: Optional[ResultFormatter] = None) -> None:
        self.workbook_path = Path(workbook_path)
        self.formatter = formatter or ResultFormatter()

    def write(self, title: str, formatted: Sequence[FormattedStep]) -> str:
        workbook = open_for_update(self.workbook_path)
        sheet = workbook.create_sheet(unique_sheet_title(workbook, title))

        for row in self.formatter.to_rows(formatted):
            sheet.append(row)

        sheet["A1"].font = Font(bold=True)
        sheet.merge_cells("A1:E1")
        # rows follow to_rows: 2 header rows, then 3 rows per step
        for index in range(len(formatted)):
            label_row = 3 + index * 3
            response_row = label_row + 1
            sheet.cell(row=label_row, column=1).font = Font(bold=True)
            sheet.merge_cells(start_row=label_row, start_column=2, end_row=label_row, end_column=5)
            sheet.merge_cells(start_row=response_row, start_column=1, end_row=response_row, end_column=5)
            sheet.cell(row=response_row, column=1).alignment = Alignment(wrap_text=True, vertical="top")

        sheet.column_dimensions["A"].width = 30
        for column in "BCDE":
            sheet.column_dimensions[column].width = 25

        self.workbook_path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(self.workbook_path)
        location = f"{self.workbook_path}!{sheet.title}"
        logger.info("Wrote %d step results to %s", len(formatted), location)
        return location


class JsonFileSink(OutputSink):
    """Dumps results (and optional run metadata) to a JSON file."""

    def __init__(self, path: Path, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.path = Path(path)
        self.metadata = metadata or {}

    def write(self, title: str, formatted: Sequence[FormattedStep]) -> str:
        output = {
            "title": title,
            "steps": [item.to_dict() for item in formatted],
            **self.metadata,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(output, indent=2, default=str), encoding="utf-8")
        return str(self.path)
