import csv
import io

import pytest

from xlsx_normalizer.config import Settings
from xlsx_normalizer.errors import (
    DecodeError,
    ExternalEngineFailed,
    InvalidOption,
    SheetNotFound,
)
from xlsx_normalizer.pipeline import ConversionOptions, ConversionPipeline
from xlsx_normalizer.workbook import Cell, Sheet, Workbook

EXPECTED_SALES = (
    "Date,Item,Amount,Paid\n"
    '2024-01-15,"Widget, large",1234.5,TRUE\n'
    '2024-01-16 13:30:00,"Say ""hi""",1000000,FALSE\n'
    "Total,,1001234.5,"
)


class StubEngine:
    def __init__(self, output=None, available=True, error=None):
        self.output = output
        self.available = available
        self.error = error
        self.calls = []

    def is_available(self):
        return self.available

    def render_csv(self, workbook_bytes, timeout):
        self.calls.append((workbook_bytes, timeout))
        if self.error is not None:
            raise self.error
        return self.output


def _engine_pipeline(engine):
    return ConversionPipeline(Settings(external_engine_enabled=True), engine=engine)


def test_structured_conversion_finds_offset_table(report_xlsx):
    result = ConversionPipeline(Settings()).convert(report_xlsx)
    assert result.strategy == "structured"
    assert result.mime_type == "text/csv"
    assert result.csv == EXPECTED_SALES
    assert result.report["header_row"] == 3
    assert result.report["header_detected"] is True
    assert result.report["bounds"] == {"left": "B", "right": "E"}
    assert result.report["rows"] == 3
    assert result.report["columns"] == 4


def test_options_flow_through(report_xlsx):
    pipeline = ConversionPipeline(Settings())
    result = pipeline.convert(
        report_xlsx,
        ConversionOptions(sheet="Sales", delimiter=";", force_quotes=True, skip_pattern="^Total"),
    )
    lines = result.csv.split("\n")
    assert lines[0] == '"Date";"Item";"Amount";"Paid"'
    assert len(lines) == 3
    assert result.report["rows_skipped"] == 1


def test_explicit_header_row_override(report_xlsx):
    result = ConversionPipeline(Settings()).convert(
        report_xlsx, ConversionOptions(header_row=4)
    )
    assert result.report["header_detected"] is False
    assert result.csv.split("\n")[0] == '2024-01-15,"Widget, large",1234.5,TRUE'


def test_header_row_outside_used_range(report_xlsx):
    with pytest.raises(InvalidOption):
        ConversionPipeline(Settings()).convert(report_xlsx, ConversionOptions(header_row=99))


def test_sheet_selection_errors(report_xlsx):
    with pytest.raises(SheetNotFound) as info:
        ConversionPipeline(Settings()).convert(report_xlsx, ConversionOptions(sheet=3))
    assert info.value.available == ["Sales", "Notes"]


def test_merge_fill_through_pipeline(merged_xlsx):
    pipeline = ConversionPipeline(Settings())
    filled = pipeline.convert(merged_xlsx, ConversionOptions(fill_merges=True))
    assert filled.csv == "X,X,c1\nX,X,c2"
    plain = pipeline.convert(merged_xlsx)
    assert plain.csv == "X,,c1\n,,c2"


def test_every_row_matches_header_width(report_xlsx):
    result = ConversionPipeline(Settings()).convert(report_xlsx, ConversionOptions(force_quotes=True))
    rows = list(csv.reader(io.StringIO(result.csv, newline="")))
    assert {len(row) for row in rows} == {4}


def test_raw_grid_fallback_when_structured_is_blank():
    sheet = Sheet(
        name="Odd",
        cells={(0, 0): Cell("text", "   ")},
        dimension=(0, 0, 0, 0),
        values=[["a", "b"], [1, 2.5]],
    )
    result = ConversionPipeline(Settings()).convert_workbook(Workbook([sheet]), ConversionOptions())
    assert result.strategy == "raw_grid"
    assert result.csv == "a,b\n1,2.5"


def test_raw_grid_fallback_when_used_range_missing():
    sheet = Sheet(name="NoDim", values=[[None], ["x", None, "y"]])
    result = ConversionPipeline(Settings()).convert_workbook(Workbook([sheet]), ConversionOptions())
    assert result.strategy == "raw_grid"
    assert result.csv == "x,,y"


def test_empty_sheet_returns_empty_without_engine(empty_xlsx):
    engine = StubEngine(output="a\n1")
    result = _engine_pipeline(engine).convert(empty_xlsx)
    assert result.csv == ""
    assert result.strategy == "empty"
    assert engine.calls == []


def test_engine_renders_uncached_formulas(formula_only_xlsx):
    engine = StubEngine(output="2,4\r\n")
    result = _engine_pipeline(engine).convert(
        formula_only_xlsx, ConversionOptions(delimiter="\t")
    )
    assert result.strategy == "external_engine"
    assert result.csv == "2\t4"
    assert len(engine.calls) == 1
    workbook_bytes, timeout = engine.calls[0]
    assert workbook_bytes.startswith(b"PK")
    assert timeout == 60.0


def test_engine_not_used_when_disabled(formula_only_xlsx):
    engine = StubEngine(output="2,4")
    result = ConversionPipeline(Settings(), engine=engine).convert(formula_only_xlsx)
    assert result.csv == ""
    assert engine.calls == []


def test_engine_not_used_when_structured_has_content(report_xlsx):
    engine = StubEngine(output="nope")
    result = _engine_pipeline(engine).convert(report_xlsx)
    assert result.strategy == "structured"
    assert engine.calls == []


def test_engine_failure_is_swallowed(formula_only_xlsx):
    engine = StubEngine(error=ExternalEngineFailed("external engine timed out after 60.0s"))
    result = _engine_pipeline(engine).convert(formula_only_xlsx)
    assert result.csv == ""
    assert result.strategy == "empty"
    issues = [w["issue"] for w in result.report["warnings"]]
    assert "engine_failed" in issues


def test_engine_probe_failure_skips_render(formula_only_xlsx):
    engine = StubEngine(output="2,4", available=False)
    result = _engine_pipeline(engine).convert(formula_only_xlsx)
    assert result.csv == ""
    assert engine.calls == []
    assert "engine_unavailable" in [w["issue"] for w in result.report["warnings"]]


def test_malformed_bytes_raise_decode_error():
    with pytest.raises(DecodeError) as info:
        ConversionPipeline(Settings()).convert(b"not a zip file")
    assert info.value.client_error is False


def test_list_sheets(report_xlsx, empty_xlsx):
    pipeline = ConversionPipeline(Settings())
    listing = pipeline.list_sheets(report_xlsx, preview_rows=3)
    assert [s["name"] for s in listing] == ["Sales", "Notes"]
    assert listing[0]["used_range"] == "A1:E7"
    assert len(listing[0]["preview"]) == 3
    assert listing[1]["preview"] == [["free text"]]

    blank = pipeline.list_sheets(empty_xlsx)
    assert blank == [{"name": "Blank", "used_range": None, "preview": []}]


def test_styled_blank_rows_above_table(styled_padding_xlsx):
    result = ConversionPipeline(Settings()).convert(styled_padding_xlsx)
    assert result.csv == "id,name,qty\n1,x,3"
    assert result.report["header_row"] == 61
    assert result.report["bounds"] == {"left": "A", "right": "C"}


def test_unexpected_engine_crash_is_swallowed(formula_only_xlsx):
    engine = StubEngine(error=RuntimeError("engine crashed"))
    result = _engine_pipeline(engine).convert(formula_only_xlsx)
    assert result.csv == ""
    assert result.strategy == "empty"
    failed = [w for w in result.report["warnings"] if w["issue"] == "engine_failed"]
    assert failed[0]["value"] == "engine crashed"


def test_raw_grid_report_drops_structured_details():
    sheet = Sheet(
        name="Odd",
        cells={(0, 0): Cell("text", "   ")},
        dimension=(0, 0, 0, 0),
        values=[["a", "b"], [1, 2.5]],
    )
    result = ConversionPipeline(Settings()).convert_workbook(Workbook([sheet]), ConversionOptions())
    assert result.report["header_row"] is None
    assert result.report["header_detected"] is False
    assert result.report["bounds"] is None
    assert result.report["rows"] == 1
    assert result.report["columns"] == 2


def test_bad_skip_pattern_rejected_on_empty_sheet():
    with pytest.raises(InvalidOption):
        ConversionPipeline(Settings()).convert_workbook(
            Workbook([Sheet(name="Empty")]), ConversionOptions(skip_pattern="(")
        )
