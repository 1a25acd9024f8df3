"""Prompt-chain data structures for CellMind."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from CELLMIND.interfaces.collaborators import EMPTY_TABLE, TabularData
from CELLMIND.interfaces.errors import ChainCancelledError, ChainExecutionError


@dataclass(frozen=True)
class ChainStep:
    """A single prompt of a chain, built from one sheet row."""

    prompt: str
    data: TabularData = EMPTY_TABLE
    include_previous_result: bool = False
    options: Mapping[str, Any] = field(default_factory=dict)
    row_number: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.prompt or not self.prompt.strip():
            raise ValueError("ChainStep prompt must be non-empty")


@dataclass(frozen=True)
class ChainResult:
    step_index: int
    response_text: str


@dataclass(frozen=True)
class GenerationRequest:
    """Everything one completion call needs."""

    prompt_text: str
    model_id: str
    max_tokens: int = 4000
    temperature: float = 0.7

    def __post_init__(self) -> None:
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "model": self.model_id,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": self.prompt_text}],
        }


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ChainRun:
    """Ordered results of one chain execution plus how it ended."""

    status: RunStatus = RunStatus.PENDING
    results: List[ChainResult] = field(default_factory=list)
    failed_step: Optional[int] = None
    error: Optional[Exception] = None
    total_steps: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def current_step(self) -> int:
        return len(self.results)

    def start(self, total_steps: int) -> None:
        self.total_steps = total_steps
        self.status = RunStatus.RUNNING

    def add_result(self, result: ChainResult) -> None:
        if result.step_index != len(self.results):
            raise ValueError(f"Result for step {result.step_index} recorded out of order")
        self.results.append(result)

    def fail(self, step_index: int, error: Exception) -> None:
        self.status = RunStatus.FAILED
        self.failed_step = step_index
        self.error = error

    def cancel(self, step_index: int) -> None:
        self.status = RunStatus.CANCELLED
        self.failed_step = step_index

    def complete(self) -> None:
        self.status = RunStatus.COMPLETED

    def raise_for_status(self) -> None:
        if self.status is RunStatus.FAILED:
            raise ChainExecutionError(self.failed_step + 1, self.error) from self.error
        if self.status is RunStatus.CANCELLED:
            raise ChainCancelledError(self.failed_step + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "total_steps": self.total_steps,
            "failed_step": None if self.failed_step is None else self.failed_step + 1,
            "error": str(self.error) if self.error else None,
            "results": [
                {"step": result.step_index + 1, "response": result.response_text}
                for result in self.results
            ],
        }
