"""Tests for workbook-backed data sources, sinks and the chain template."""
from __future__ import annotations

import datetime
import json
import zipfile

import pandas as pd
import pytest
from openpyxl import Workbook, load_workbook
from openpyxl.workbook.defined_name import DefinedName

from CELLMIND.analysis.chain import ChainResult, ChainStep
from CELLMIND.analysis.columns import discover_columns
from CELLMIND.analysis.references import DataReferenceResolver
from CELLMIND.interfaces.errors import InvalidAddressError, ScopeNotFoundError
from CELLMIND.tools.addresses import parse_address
from CELLMIND.tools.data_sources import FrameDataSource, WorkbookDataSource
from CELLMIND.writing.formatter import ResultFormatter, format_results
from CELLMIND.writing.sinks import JsonFileSink, WorkbookSheetSink, timestamped_title
from CELLMIND.writing.template import TEMPLATE_SHEET, write_template


@pytest.fixture
def workbook_path(tmp_path):
    workbook = Workbook()
    chain = workbook.active
    chain.title = "Chain"
    chain.append(["Prompt", "Data Range", "Include Previous Result"])
    chain.append(["Summarize sales", "Sales!A1:B3", "NO"])
    chain.append(["Explain", "", "YES"])

    sales = workbook.create_sheet("Sales")
    sales.append(["region", "total"])
    sales.append(["north", 10])
    sales.append(["south", 20])

    workbook.defined_names["Totals"] = DefinedName("Totals", attr_text="Sales!$B$1:$B$3")

    path = tmp_path / "chain.xlsx"
    workbook.save(path)
    return path


def test_parse_address_variants() -> None:
    assert parse_address("A1") == (1, 1, 1, 1)
    assert parse_address("b2:c4") == (2, 2, 3, 4)
    assert parse_address("$A$1:$B$2") == (1, 1, 2, 2)
    assert parse_address("A:B") == (1, None, 2, None)
    for bad in ["", "Foo", "Sheet", "A1:", "1A"]:
        with pytest.raises(InvalidAddressError):
            parse_address(bad)


def test_workbook_source_reads_ranges_and_names(workbook_path) -> None:
    source = WorkbookDataSource.from_path(workbook_path)

    assert source.default_scope == "Chain"
    assert source.list_scopes() == {"Chain", "Sales"}
    assert source.get_values("A2:B3", scope="Sales") == (("north", 10), ("south", 20))
    assert source.get_values("B:B", scope="Sales") == (("total",), (10,), (20,))
    assert source.get_values_by_name("Totals") == (("total",), (10,), (20,))
    assert source.get_values_by_name("Nope") is None
    assert source.used_values()[0] == ("Prompt", "Data Range", "Include Previous Result")


def test_workbook_source_unknown_sheet(workbook_path) -> None:
    with pytest.raises(ScopeNotFoundError):
        WorkbookDataSource.from_path(workbook_path, active_sheet="Missing")
    source = WorkbookDataSource.from_path(workbook_path)
    with pytest.raises(ScopeNotFoundError):
        source.get_values("A1", scope="Missing")


def test_frame_source_from_csv_dir(tmp_path) -> None:
    (tmp_path / "Chain.csv").write_text("Prompt,Data\nHello,Numbers!A1:A2\n,\n", encoding="utf-8")
    (tmp_path / "Numbers.csv").write_text("1\n2\n", encoding="utf-8")

    source = FrameDataSource.from_csv_dir(tmp_path, default_scope="Chain")
    assert source.list_scopes() == {"Chain", "Numbers"}
    assert source.used_values() == (("Prompt", "Data"), ("Hello", "Numbers!A1:A2"), (None, None))
    assert source.get_values("A1:A2", scope="Numbers") == (("1",), ("2",))


def test_frame_source_pads_out_of_range_cells() -> None:
    source = FrameDataSource({"S": pd.DataFrame({"a": [1]})})
    assert source.get_values("A1:B3") == (("a", None), (1, None), (None, None))


def test_template_round_trip(tmp_path) -> None:
    path = tmp_path / "book.xlsx"
    title = write_template(path)
    assert title == TEMPLATE_SHEET

    source = WorkbookDataSource.from_path(path, active_sheet=TEMPLATE_SHEET)
    rows = source.used_values()
    columns = discover_columns(rows[0])
    assert (columns.prompt, columns.data_range, columns.include_previous) == (0, 1, 2)
    prompts = [row[0] for row in rows[1:] if row[0]]
    assert len(prompts) == 4


def test_template_renames_existing_sheet(tmp_path) -> None:
    path = tmp_path / "book.xlsx"
    write_template(path)
    write_template(path)
    assert {TEMPLATE_SHEET, f"{TEMPLATE_SHEET} (old)"} <= set(load_workbook(path).sheetnames)

    write_template(path, overwrite=True)
    assert load_workbook(path).sheetnames.count(TEMPLATE_SHEET) == 1


def _formatted():
    steps = [ChainStep(prompt="First"), ChainStep(prompt="Second")]
    results = [ChainResult(0, "answer one"), ChainResult(1, "answer two")]
    return format_results(steps, results)


def test_format_results_labels() -> None:
    formatted = _formatted()
    assert [item.label for item in formatted] == ["Step 1", "Step 2"]
    assert formatted[1].prompt_echo == "Second"
    assert formatted[1].response_text == "answer two"


def test_format_empty_results() -> None:
    assert format_results([ChainStep(prompt="x")], []) == []
    assert ResultFormatter().to_rows([]) == [["Prompt Chain Results"], []]


def test_workbook_sheet_sink(workbook_path) -> None:
    location = WorkbookSheetSink(workbook_path).write("Prompt Chain Results", _formatted())
    assert location.endswith("!Prompt Chain Results")

    sheet = load_workbook(workbook_path)["Prompt Chain Results"]
    assert sheet["A1"].value == "Prompt Chain Results"
    assert sheet["A3"].value == "Step 1:"
    assert sheet["B3"].value == "First"
    assert sheet["A4"].value == "answer one"
    assert sheet["A6"].value == "Step 2:"
    assert sheet["A7"].value == "answer two"

    WorkbookSheetSink(workbook_path).write("Prompt Chain Results", _formatted())
    assert "Prompt Chain Results (2)" in load_workbook(workbook_path).sheetnames


def test_json_file_sink(tmp_path) -> None:
    path = tmp_path / "out" / "results.json"
    JsonFileSink(path, metadata={"run": {"status": "completed"}}).write("Prompt Chain Results", _formatted())
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["run"]["status"] == "completed"
    assert payload["steps"][0] == {"label": "Step 1", "prompt_echo": "First", "response_text": "answer one"}


def test_timestamped_title_fits_sheet_limit() -> None:
    title = timestamped_title("Prompt Chain Results", datetime.datetime(2024, 1, 2, 3, 4, 5))
    assert len(title) <= 31
    assert title.startswith("Prompt Chain Results 2024")


def test_reading_past_used_area_leaves_sheet_unchanged(workbook_path) -> None:
    source = WorkbookDataSource.from_path(workbook_path)
    resolver = DataReferenceResolver(source)
    before = resolver.resolve("Sales!B:B")

    wide = resolver.resolve("Sales!A1:C50")
    assert len(wide) == 50
    assert wide[0] == ("region", "total", None)
    assert wide[49] == (None, None, None)
    assert resolver.resolve("Sales!E10:F11") == ((None, None), (None, None))

    assert resolver.resolve("Sales!B:B") == before == (("total",), (10,), (20,))
    assert source.used_values("Sales") == (("region", "total"), ("north", 10), ("south", 20))
    assert (source.workbook["Sales"].max_row, source.workbook["Sales"].max_column) == (3, 2)


def test_defined_names_ignore_case(workbook_path) -> None:
    source = WorkbookDataSource.from_path(workbook_path)
    assert source.get_values_by_name("totals") == (("total",), (10,), (20,))
    assert DataReferenceResolver(source).resolve("TOTALS") == (("total",), (10,), (20,))


def test_frame_source_names_ignore_case(frames_source) -> None:
    assert frames_source.get_values_by_name("TOTALS") == (("total",), (10,), (20,))


def _macro_workbook(path):
    workbook = Workbook()
    workbook.active.title = "Chain"
    workbook.active.append(["Prompt"])
    workbook.save(path)
    with zipfile.ZipFile(path, "a") as archive:
        archive.writestr("xl/vbaProject.bin", b"fake vba project")


def _assert_macros_kept(path) -> None:
    with zipfile.ZipFile(path) as archive:
        assert "xl/vbaProject.bin" in archive.namelist()
        assert "macroEnabled" in archive.read("[Content_Types].xml").decode("utf-8")


def test_sheet_sink_keeps_macros(tmp_path) -> None:
    path = tmp_path / "macros.xlsm"
    _macro_workbook(path)

    WorkbookSheetSink(path).write("Prompt Chain Results", _formatted())

    _assert_macros_kept(path)
    assert "Prompt Chain Results" in load_workbook(path, keep_vba=True).sheetnames


def test_template_keeps_macros(tmp_path) -> None:
    path = tmp_path / "macros.xlsm"
    _macro_workbook(path)
    write_template(path)
    _assert_macros_kept(path)


def test_new_macro_workbook_is_refused(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        WorkbookSheetSink(tmp_path / "new.xlsm").write("Prompt Chain Results", _formatted())
