"""Presentation structure for chain results."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

from CELLMIND.analysis.chain import ChainResult, ChainStep

RESULTS_HEADING = "Prompt Chain Results"


@dataclass(frozen=True)
class FormattedStep:
    label: str
    prompt_echo: str
    response_text: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def format_results(steps: Sequence[ChainStep], results: Sequence[ChainResult]) -> List[FormattedStep]:
    """Pair each result with the prompt of the step that produced it."""
    formatted = []
    for result in results:
        step = steps[result.step_index]
        formatted.append(
            FormattedStep(
                label=f"Step {result.step_index + 1}",
                prompt_echo=step.prompt,
                response_text=result.response_text,
            )
        )
    return formatted


class ResultFormatter:
    """Lays formatted steps out as sheet rows: heading, blank, then label/prompt, response, spacer per step."""

    def __init__(self, heading: str = RESULTS_HEADING) -> None:
        self.heading = heading

    def format(self, steps: Sequence[ChainStep], results: Sequence[ChainResult]) -> List[FormattedStep]:
        return format_results(steps, results)

    def to_rows(self, formatted: Sequence[FormattedStep]) -> List[List[Optional[str]]]:
        rows: List[List[Optional[str]]] = [[self.heading], []]
        for item in formatted:
            rows.append([f"{item.label}:", item.prompt_echo])
            rows.append([item.response_text])
            rows.append([])
        return rows

    def to_text(self, formatted: Sequence[FormattedStep]) -> str:
        blocks = [self.heading, "=" * len(self.heading)]
        for item in formatted:
            blocks.append(f"\n{item.label}: {item.prompt_echo}\n{item.response_text}")
        return "\n".join(blocks)
