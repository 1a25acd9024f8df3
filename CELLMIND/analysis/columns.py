"""Locate the prompt, data-range and include-previous columns of a chain sheet.

Users label their columns loosely ("Prompt", "My Query", "Data Range (optional)"),
so each role is matched by keyword containment on the normalized header text
rather than by position or exact wording.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from CELLMIND.config.settings import DEFAULT_KEYWORDS

NOT_FOUND = -1


def normalize_header(value: Any) -> str:
    if value is None:
        return ""
    return str(value).lower().strip()


def find_column_index(headers: Sequence[Any], keywords: Sequence[str]) -> int:
    """Return the first header index containing any keyword, or NOT_FOUND."""
    normalized = [normalize_header(header) for header in headers]
    wanted = [keyword.lower().strip() for keyword in keywords if keyword and keyword.strip()]
    for index, header in enumerate(normalized):
        for keyword in wanted:
            if keyword in header:
                return index
    return NOT_FOUND


@dataclass(frozen=True)
class ChainColumns:
    prompt: int
    data_range: int = NOT_FOUND
    include_previous: int = NOT_FOUND

    @property
    def has_prompt(self) -> bool:
        return self.prompt != NOT_FOUND


def discover_columns(
    headers: Sequence[Any],
    keywords: Optional[Mapping[str, Sequence[str]]] = None,
) -> ChainColumns:
    keywords = {**DEFAULT_KEYWORDS, **(keywords or {})}
    return ChainColumns(
        prompt=find_column_index(headers, keywords["prompt"]),
        data_range=find_column_index(headers, keywords["data_range"]),
        include_previous=find_column_index(headers, keywords["include_previous"]),
    )
