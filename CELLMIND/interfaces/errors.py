"""Error taxonomy for CellMind chain building and execution."""
from __future__ import annotations


class CellMindError(Exception):
    """Base class for all CellMind failures."""


class MissingApiKeyError(CellMindError):
    """Raised when no API key is available from the credential store or settings."""

    def __init__(self) -> None:
        super().__init__("No API key configured. Run `cellmind key set <KEY>` or set ANTHROPIC_API_KEY.")


# Reference resolution


class ReferenceResolutionError(CellMindError):
    """A data reference could not be turned into tabular data."""


class ScopeNotFoundError(ReferenceResolutionError):
    def __init__(self, scope: str) -> None:
        super().__init__(f'Sheet "{scope}" not found')
        self.scope = scope


class InvalidAddressError(ReferenceResolutionError):
    def __init__(self, reference: str, cause: Exception | str | None = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f'Invalid range "{reference}"{detail}')
        self.reference = reference
        self.cause = cause


# Chain building


class ChainBuildError(CellMindError):
    """The chain table could not be turned into steps."""


class NoPromptColumnError(ChainBuildError):
    def __init__(self) -> None:
        super().__init__(
            'Could not find a column with "Prompt" (or similar term). '
            "Please ensure your sheet has such a column."
        )


class EmptyChainError(ChainBuildError):
    def __init__(self) -> None:
        super().__init__("No valid prompts were found. Please add at least one prompt.")


class ChainBuildAbortedError(ChainBuildError):
    """The caller declined to continue after a data range problem."""

    def __init__(self, row_number: int, reference: str, cause: ReferenceResolutionError) -> None:
        super().__init__(f'Chain build aborted at row {row_number}: data range "{reference}" failed ({cause})')
        self.row_number = row_number
        self.reference = reference
        self.cause = cause


# Completion API


class CompletionError(CellMindError):
    """A single completion call failed."""


class HttpCompletionError(CompletionError):
    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"API error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class TransportCompletionError(CompletionError):
    def __init__(self, cause: Exception | str) -> None:
        super().__init__(f"Error during API request: {cause}")
        self.cause = cause


class MalformedResponseError(CompletionError):
    def __init__(self, detail: str, body: str = "") -> None:
        super().__init__(f"Malformed API response: {detail}")
        self.body = body


# Chain execution


class ChainExecutionError(CellMindError):
    """Raised by ChainRun.raise_for_status for a run that failed at a step."""

    def __init__(self, step_number: int, cause: Exception) -> None:
        super().__init__(f"Step {step_number} failed: {cause}")
        self.step_number = step_number
        self.cause = cause


class ChainCancelledError(CellMindError):
    def __init__(self, step_number: int) -> None:
        super().__init__(f"Chain cancelled before step {step_number}")
        self.step_number = step_number
