import io
from datetime import datetime

import pytest
from openpyxl import Workbook
from openpyxl.styles import Font


def xlsx_bytes(wb: Workbook) -> bytes:
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


@pytest.fixture
def report_xlsx() -> bytes:
    """Title row, a blank row, then a table offset by one column with a footer."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sales"
    ws["A1"] = "Quarterly report"
    ws["B3"] = "Date"
    ws["C3"] = "Item"
    ws["D3"] = "Amount"
    ws["E3"] = "Paid"
    ws["B4"] = datetime(2024, 1, 15)
    ws["C4"] = "Widget, large"
    ws["D4"] = 1234.5
    ws["E4"] = True
    ws["B5"] = datetime(2024, 1, 16, 13, 30)
    ws["C5"] = 'Say "hi"'
    ws["D5"] = 1000000
    ws["E5"] = False
    ws["B7"] = "Total"
    ws["D7"] = 1001234.5

    notes = wb.create_sheet("Notes")
    notes["A1"] = "free text"
    return xlsx_bytes(wb)


@pytest.fixture
def merged_xlsx() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Merged"
    ws["A1"] = "X"
    ws.merge_cells("A1:B2")
    ws["C1"] = "c1"
    ws["C2"] = "c2"
    return xlsx_bytes(wb)


@pytest.fixture
def formula_only_xlsx() -> bytes:
    # openpyxl writes formulas without cached values
    wb = Workbook()
    ws = wb.active
    ws.title = "Calc"
    ws["A1"] = "=1+1"
    ws["B1"] = "=2+2"
    return xlsx_bytes(wb)


@pytest.fixture
def empty_xlsx() -> bytes:
    wb = Workbook()
    wb.active.title = "Blank"
    return xlsx_bytes(wb)


@pytest.fixture
def styled_padding_xlsx() -> bytes:
    """Sixty styled but empty rows above the real table."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Padded"
    for row in range(1, 61):
        ws.cell(row=row, column=1).font = Font(bold=True)
    for col, value in enumerate(["id", "name", "qty"], start=1):
        ws.cell(row=61, column=col, value=value)
    for col, value in enumerate([1, "x", 3], start=1):
        ws.cell(row=62, column=col, value=value)
    return xlsx_bytes(wb)
