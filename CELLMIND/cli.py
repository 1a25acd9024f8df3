"""Command-line entrypoint for running CellMind prompt chains against a workbook."""
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from CELLMIND.analysis.builder import ReferenceIssue
from CELLMIND.config.settings import Settings, get_settings
from CELLMIND.interfaces.collaborators import TabularDataSource
from CELLMIND.interfaces.errors import CellMindError
from CELLMIND.pipeline.orchestrator import CellMindPipeline, diagnose
from CELLMIND.runtime.event_log import EventLog
from CELLMIND.tools.completion_client import CompletionClient, RetryingCompletionClient
from CELLMIND.tools.credentials import FileCredentialStore
from CELLMIND.tools.data_sources import FrameDataSource, WorkbookDataSource
from CELLMIND.writing.sinks import JsonFileSink, WorkbookSheetSink
from CELLMIND.writing.template import TEMPLATE_SHEET, write_template


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run natural-language prompt chains over spreadsheet data")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Execute the prompt chain defined in a sheet")
    run.add_argument("source", type=Path, help="Workbook (.xlsx/.xlsm) or directory of CSV files")
    run.add_argument("--sheet", help="Sheet holding the chain (defaults to the active sheet)")
    run.add_argument(
        "--out",
        type=Path,
        default=Path("cellmind_results.json"),
        help="Path to write step results and run status (JSON)",
    )
    run.add_argument(
        "--write-sheet",
        action="store_true",
        help="Also add a 'Prompt Chain Results' sheet to the workbook",
    )
    run.add_argument(
        "--assume-yes",
        action="store_true",
        help="Continue with empty data whenever a data range cannot be resolved",
    )
    run.add_argument("--log-path", type=Path, help="Optional JSONL file to capture chain run events")

    prompt = subparsers.add_parser("prompt", help="Send a single prompt with sheet data")
    prompt.add_argument("source", type=Path, help="Workbook (.xlsx) or directory of CSV files")
    prompt.add_argument("text", help="Prompt text")
    prompt.add_argument("--range", dest="reference", help="Data reference (e.g. A1:D10, Sheet1!A1:F20, MyRange)")
    prompt.add_argument("--sheet", help="Sheet used for bare addresses and whole-sheet data")
    prompt.add_argument("--no-headers", action="store_true", help="Drop the first row of the data")

    template = subparsers.add_parser("template", help="Create a prompt chain template sheet")
    template.add_argument("workbook", type=Path, help="Workbook (.xlsx) to add the template to")
    template.add_argument("--overwrite", action="store_true", help="Replace an existing template sheet")

    key = subparsers.add_parser("key", help="Manage the stored API key")
    key_actions = key.add_subparsers(dest="key_command", required=True)
    key_set = key_actions.add_parser("set", help="Store an API key")
    key_set.add_argument("value", help="Anthropic API key")
    key_actions.add_parser("clear", help="Delete the stored API key")
    key_actions.add_parser("status", help="Show whether an API key is configured")

    diagnostics = subparsers.add_parser("diagnostics", help="Report configuration and data source state")
    diagnostics.add_argument("source", type=Path, nargs="?", help="Optional workbook or CSV directory to inspect")
    return parser


def open_data_source(source: Path, sheet: str | None = None) -> TabularDataSource:
    if source.is_dir():
        return FrameDataSource.from_csv_dir(source, default_scope=sheet)
    return WorkbookDataSource.from_path(source, active_sheet=sheet)


def ask_to_continue(issue: ReferenceIssue) -> bool:
    print(issue.describe(), file=sys.stderr)
    try:
        answer = input("Continue with an empty data set for this step? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def build_client(settings: Settings, store: FileCredentialStore):
    client = CompletionClient.from_settings(settings, credential_store=store)
    if settings.max_retries:
        return RetryingCompletionClient(client, max_retries=settings.max_retries)
    return client


def cmd_run(args: argparse.Namespace, settings: Settings, store: FileCredentialStore) -> None:
    data_source = open_data_source(args.source, args.sheet)
    sink = None
    if args.write_sheet:
        if args.source.suffix.lower() not in {".xlsx", ".xlsm"}:
            raise SystemExit("--write-sheet needs an .xlsx or .xlsm workbook as source")
        sink = WorkbookSheetSink(args.source)

    pipeline = CellMindPipeline(
        settings=settings,
        data_source=data_source,
        client=build_client(settings, store),
        credential_store=store,
        sink=sink,
        event_log=EventLog(args.log_path),
    )
    handler = (lambda issue: True) if args.assume_yes else ask_to_continue
    outcome = pipeline.run_chain(scope=args.sheet, on_reference_error=handler)

    print(pipeline.formatter.to_text(outcome.formatted))
    JsonFileSink(args.out, metadata={"run": outcome.run.to_dict()}).write(
        pipeline.formatter.heading, outcome.formatted
    )
    print(f"\nResults saved to {args.out}" + (f" and {outcome.location}" if outcome.location else ""))
    # raises for failed or cancelled runs once partial results are safely written
    outcome.run.raise_for_status()


def cmd_prompt(args: argparse.Namespace, settings: Settings, store: FileCredentialStore) -> None:
    pipeline = CellMindPipeline(
        settings=settings,
        data_source=open_data_source(args.source, args.sheet),
        client=build_client(settings, store),
        credential_store=store,
    )
    print(pipeline.process_prompt(args.text, reference=args.reference, include_headers=not args.no_headers))


def cmd_key(args: argparse.Namespace, settings: Settings, store: FileCredentialStore) -> None:
    if args.key_command == "set":
        try:
            store.set(args.value)
        except ValueError as exc:
            raise SystemExit(str(exc))
        print("API key successfully saved")
    elif args.key_command == "clear":
        store.clear()
        print("API key successfully deleted")
    else:
        configured = bool(store.get() or settings.anthropic_api_key)
        print("API key is configured" if configured else "No API key configured")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = FileCredentialStore(settings.credentials_path)

    try:
        if args.command == "run":
            cmd_run(args, settings, store)
        elif args.command == "prompt":
            cmd_prompt(args, settings, store)
        elif args.command == "template":
            title = write_template(args.workbook, sheet_name=TEMPLATE_SHEET, overwrite=args.overwrite)
            print(f'Template sheet "{title}" written to {args.workbook}')
        elif args.command == "key":
            cmd_key(args, settings, store)
        elif args.command == "diagnostics":
            data_source = open_data_source(args.source) if args.source else None
            print(json.dumps(diagnose(settings, store, data_source), indent=2))
    except (CellMindError, FileNotFoundError) as e:
        raise SystemExit(f"Error: {e}")


if __name__ == "__main__":
    main()
