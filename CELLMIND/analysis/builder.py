"""Turns the rows of a chain sheet into ordered ChainSteps."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from CELLMIND.analysis.chain import ChainStep
from CELLMIND.analysis.columns import NOT_FOUND, ChainColumns, discover_columns
from CELLMIND.analysis.references import DataReferenceResolver
from CELLMIND.interfaces.collaborators import EMPTY_TABLE
from CELLMIND.interfaces.errors import (
    ChainBuildAbortedError,
    EmptyChainError,
    NoPromptColumnError,
    ReferenceResolutionError,
)

logger = logging.getLogger(__name__)

TRUTHY_FLAGS = {"yes", "true", "1"}


@dataclass(frozen=True)
class ReferenceIssue:
    """Handed to the caller when a row's data range cannot be resolved."""

    row_number: int
    reference: str
    error: ReferenceResolutionError

    def describe(self) -> str:
        return f'There was a problem with the data range "{self.reference}" in row {self.row_number}: {self.error}'


# Return True to continue the row with empty data, False to abort the whole build.
ReferenceErrorHandler = Callable[[ReferenceIssue], bool]


def _cell(row: Sequence[Any], index: int) -> Any:
    if index == NOT_FOUND or index >= len(row):
        return None
    return row[index]


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_include_flag(value: Any) -> bool:
    return _cell_text(value).lower() in TRUTHY_FLAGS


class ChainBuilder:
    """Builds chain steps from sheet rows, resolving each row's data reference."""

    def __init__(
        self,
        resolver: DataReferenceResolver,
        on_reference_error: Optional[ReferenceErrorHandler] = None,
        keywords=None,
    ) -> None:
        self.resolver = resolver
        self.on_reference_error = on_reference_error
        self.keywords = keywords

    def build(
        self,
        rows: Sequence[Sequence[Any]],
        columns: Optional[ChainColumns] = None,
        current_scope: Optional[str] = None,
    ) -> List[ChainStep]:
        """Build from a full table whose first row holds the headers."""
        if not rows:
            raise EmptyChainError()
        if columns is None:
            columns = discover_columns(rows[0], self.keywords)
        logger.debug("Chain columns: %s", columns)
        return self.build_steps(
            rows[1:],
            columns.prompt,
            columns.data_range,
            columns.include_previous,
            current_scope=current_scope,
            first_row_number=2,
        )

    def build_steps(
        self,
        rows: Sequence[Sequence[Any]],
        prompt_col: int,
        range_col: int = NOT_FOUND,
        include_col: int = NOT_FOUND,
        current_scope: Optional[str] = None,
        first_row_number: int = 1,
    ) -> List[ChainStep]:
        """Build from data rows only; ``first_row_number`` is the sheet row of ``rows[0]``."""
        if prompt_col == NOT_FOUND:
            raise NoPromptColumnError()

        steps: List[ChainStep] = []
        for offset, row in enumerate(rows):
            row_number = first_row_number + offset
            prompt = _cell_text(_cell(row, prompt_col))
            if not prompt:
                continue

            reference = _cell_text(_cell(row, range_col))
            data = EMPTY_TABLE
            if reference:
                try:
                    data = self.resolver.resolve(reference, current_scope=current_scope)
                except ReferenceResolutionError as exc:
                    data = self._handle_reference_error(ReferenceIssue(row_number, reference, exc))

            steps.append(
                ChainStep(
                    prompt=prompt,
                    data=data,
                    include_previous_result=parse_include_flag(_cell(row, include_col)),
                    options={},
                    row_number=row_number,
                )
            )

        if not steps:
            raise EmptyChainError()
        logger.info("Built prompt chain with %d steps", len(steps))
        return steps

    def _handle_reference_error(self, issue: ReferenceIssue):
        if self.on_reference_error is None:
            raise issue.error
        if self.on_reference_error(issue):
            logger.warning("%s; continuing with empty data", issue.describe())
            return EMPTY_TABLE
        raise ChainBuildAbortedError(issue.row_number, issue.reference, issue.error) from issue.error
