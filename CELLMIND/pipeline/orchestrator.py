"""End-to-end CellMind pipeline: sheet rows in, formatted chain results out."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from CELLMIND.analysis.builder import ChainBuilder, ReferenceErrorHandler
from CELLMIND.analysis.chain import ChainRun, ChainStep
from CELLMIND.analysis.executor import TABLE_HEADER, ChainExecutor, Completer, GenerationDefaults, render_table
from CELLMIND.analysis.references import DataReferenceResolver
from CELLMIND.config.settings import Settings
from CELLMIND.interfaces.collaborators import CredentialStore, OutputSink, TabularDataSource
from CELLMIND.runtime.event_log import EventLog
from CELLMIND.writing.formatter import FormattedStep, ResultFormatter
from CELLMIND.writing.sinks import timestamped_title

logger = logging.getLogger(__name__)

NO_DATA_PLACEHOLDER = "No data available"


@dataclass
class ChainOutcome:
    steps: List[ChainStep]
    run: ChainRun
    formatted: List[FormattedStep] = field(default_factory=list)
    location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.run.to_dict(),
            "formatted": [item.to_dict() for item in self.formatted],
            "location": self.location,
        }


class CellMindPipeline:
    """Wires resolver, builder, executor and formatter around injected collaborators."""

    def __init__(
        self,
        settings: Settings,
        data_source: TabularDataSource,
        client: Completer,
        credential_store: Optional[CredentialStore] = None,
        sink: Optional[OutputSink] = None,
        event_log: Optional[EventLog] = None,
        formatter: Optional[ResultFormatter] = None,
    ) -> None:
        self.settings = settings
        self.data_source = data_source
        self.client = client
        self.credential_store = credential_store
        self.sink = sink
        self.defaults = GenerationDefaults.from_settings(settings)
        self.resolver = DataReferenceResolver(data_source)
        self.executor = ChainExecutor(client, defaults=self.defaults, event_log=event_log)
        self.formatter = formatter or ResultFormatter()

    def build_chain(
        self,
        scope: Optional[str] = None,
        on_reference_error: Optional[ReferenceErrorHandler] = None,
    ) -> List[ChainStep]:
        scope = scope or self.data_source.default_scope
        rows = self.data_source.used_values(scope)
        builder = ChainBuilder(
            self.resolver,
            on_reference_error=on_reference_error,
            keywords=self.settings.column_keywords,
        )
        return builder.build(rows, current_scope=scope)

    def run_chain(
        self,
        scope: Optional[str] = None,
        on_reference_error: Optional[ReferenceErrorHandler] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        write_results: bool = True,
    ) -> ChainOutcome:
        """Build, execute and format a chain. Partial results are written even when a step fails."""
        steps = self.build_chain(scope=scope, on_reference_error=on_reference_error)
        run = self.executor.execute(steps, should_cancel=should_cancel)
        outcome = ChainOutcome(steps=steps, run=run, formatted=self.formatter.format(steps, run.results))

        if write_results and self.sink is not None and outcome.formatted:
            outcome.location = self.sink.write(timestamped_title("Prompt Chain Results"), outcome.formatted)
        if not run.succeeded:
            logger.warning(
                "Chain stopped at step %d of %d (%s)",
                run.failed_step + 1,
                len(steps),
                run.status.value,
            )
        return outcome

    def process_prompt(
        self,
        prompt: str,
        reference: Optional[str] = None,
        include_headers: bool = True,
        scope: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Send a single prompt with a range (or the whole sheet) appended."""
        if not prompt or not prompt.strip():
            raise ValueError("Prompt cannot be empty")
        scope = scope or self.data_source.default_scope
        if reference and reference.strip():
            data = self.resolver.resolve(reference, current_scope=scope)
        else:
            data = self.data_source.used_values(scope)
        if not include_headers:
            data = data[1:]

        table = render_table(data) or NO_DATA_PLACEHOLDER
        request = self.defaults.request_for(prompt.strip() + TABLE_HEADER + table, options)
        return self.client.complete(request)

    def diagnostics(self) -> Dict[str, Any]:
        return diagnose(self.settings, self.credential_store, self.data_source)


def diagnose(
    settings: Settings,
    credential_store: Optional[CredentialStore] = None,
    data_source: Optional[TabularDataSource] = None,
) -> Dict[str, Any]:
    """Report configuration state without needing a working API key."""
    has_key = bool((credential_store.get() if credential_store else None) or settings.anthropic_api_key)
    report: Dict[str, Any] = {
        "api_key_configured": has_key,
        "model": settings.model,
        "api_url": settings.api_url,
        "max_retries": settings.max_retries,
    }
    if data_source is not None:
        report["scopes"] = sorted(data_source.list_scopes())
        report["default_scope"] = data_source.default_scope
    return report
