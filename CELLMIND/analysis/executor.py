"""Sequential prompt-chain executor for CellMind."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from CELLMIND.analysis.chain import ChainResult, ChainRun, ChainStep, GenerationRequest
from CELLMIND.config.settings import DEFAULT_MODEL, Settings
from CELLMIND.interfaces.collaborators import TabularData
from CELLMIND.interfaces.errors import CompletionError, EmptyChainError
from CELLMIND.runtime.event_log import EventLog

logger = logging.getLogger(__name__)

PREVIOUS_RESULT_HEADER = "\n\nResult from previous step:\n"
TABLE_HEADER = "\n\nHere is the data from the table:\n\n"
CELL_DELIMITER = "\t"


class Completer(Protocol):
    def complete(self, request: GenerationRequest) -> str: ...


@dataclass(frozen=True)
class GenerationDefaults:
    model: str = DEFAULT_MODEL
    max_tokens: int = 4000
    temperature: float = 0.7

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationDefaults":
        return cls(model=settings.model, max_tokens=settings.max_tokens, temperature=settings.temperature)

    def request_for(self, prompt_text: str, options: Optional[Mapping[str, Any]] = None) -> GenerationRequest:
        options = options or {}
        # explicit zeros in options are honored, only missing keys fall back
        model = options.get("model")
        max_tokens = options.get("max_tokens")
        temperature = options.get("temperature")
        return GenerationRequest(
            prompt_text=prompt_text,
            model_id=model if model is not None else self.model,
            max_tokens=int(max_tokens) if max_tokens is not None else self.max_tokens,
            temperature=float(temperature) if temperature is not None else self.temperature,
        )


def _render_cell(value: Any) -> str:
    return "" if value is None else str(value)


def render_table(data: TabularData) -> str:
    """Tab-separated rows, each terminated by a newline. Empty data renders as ''."""
    return "".join(CELL_DELIMITER.join(_render_cell(cell) for cell in row) + "\n" for row in data)


def compose_prompt(step: ChainStep, previous_response: Optional[str]) -> str:
    prompt = step.prompt
    if previous_response is not None and step.include_previous_result:
        prompt += PREVIOUS_RESULT_HEADER + previous_response
    table = render_table(step.data)
    if table:
        prompt += TABLE_HEADER + table
    return prompt


class ChainExecutor:
    """Runs chain steps strictly in order, feeding each response to the next step on request."""

    def __init__(
        self,
        client: Completer,
        defaults: Optional[GenerationDefaults] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self.client = client
        self.defaults = defaults or GenerationDefaults()
        self.event_log = event_log or EventLog()

    def execute(
        self,
        steps: Sequence[ChainStep],
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> ChainRun:
        if not steps:
            raise EmptyChainError()

        run = ChainRun()
        run_id = self.event_log.new_run_id()
        run.start(total_steps=len(steps))
        self.event_log.log("chain_started", run_id, {"steps": len(steps)})

        previous_response: Optional[str] = None
        for index, step in enumerate(steps):
            if should_cancel is not None and should_cancel():
                logger.info("Chain cancelled before step %d of %d", index + 1, len(steps))
                run.cancel(index)
                self.event_log.log("chain_cancelled", run_id, {"step": index + 1})
                return run

            prompt_text = compose_prompt(step, previous_response)
            logger.info("Executing step %d of %d", index + 1, len(steps))
            try:
                request = self.defaults.request_for(prompt_text, step.options)
                response_text = self.client.complete(request)
            except (CompletionError, ValueError, TypeError) as exc:
                logger.error("Step %d failed: %s", index + 1, exc)
                run.fail(index, exc)
                self.event_log.log("step_failed", run_id, {"step": index + 1, "error": str(exc)})
                return run

            run.add_result(ChainResult(step_index=index, response_text=response_text))
            self.event_log.log(
                "step_completed",
                run_id,
                {
                    "step": index + 1,
                    "row": step.row_number,
                    "prompt": prompt_text,
                    "response": response_text,
                },
            )
            previous_response = response_text

        run.complete()
        self.event_log.log("chain_completed", run_id, {"steps": len(run.results)})
        return run
