"""
In-memory workbook model and the openpyxl-backed decoder.

The conversion core only sees the small model defined here:
- Workbook: ordered sheets with unique names
- Sheet: sparse (row, col) -> Cell mapping, declared used range, merge regions,
  and the decoder's flattened array-of-arrays view
- Cell: (kind, value) with kind in number/date/boolean/text/empty

All coordinates are zero-based.
"""

from __future__ import annotations

import datetime as dt
import io
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Tuple

from openpyxl import load_workbook
from openpyxl.utils import get_column_letter

from .errors import DecodeError

logger = logging.getLogger(__name__)

CellKind = Literal["number", "date", "boolean", "text", "empty"]
Coord = Tuple[int, int]
# (min_row, min_col, max_row, max_col), inclusive
Rect = Tuple[int, int, int, int]


@dataclass(frozen=True)
class Cell:
    kind: CellKind = "empty"
    value: Any = None


EMPTY_CELL = Cell()


@dataclass(frozen=True)
class MergeRegion:
    start_row: int
    start_col: int
    end_row: int
    end_col: int


@dataclass
class Sheet:
    name: str
    cells: Dict[Coord, Cell] = field(default_factory=dict)
    dimension: Optional[Rect] = None
    merges: List[MergeRegion] = field(default_factory=list)
    values: List[List[Any]] = field(default_factory=list)

    def used_range(self) -> Optional[Rect]:
        return self.dimension

    def cell_at(self, row: int, col: int) -> Cell:
        return self.cells.get((row, col), EMPTY_CELL)

    def merge_regions(self) -> List[MergeRegion]:
        return list(self.merges)


@dataclass
class Workbook:
    sheets: List[Sheet] = field(default_factory=list)

    def sheet_names(self) -> List[str]:
        return [s.name for s in self.sheets]


def classify_value(value: Any, is_date: bool = False) -> Cell:
    """Map a decoded Python value to a typed Cell."""
    if value is None or value == "":
        return EMPTY_CELL
    if isinstance(value, bool):
        return Cell("boolean", value)
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return Cell("date", value)
    if isinstance(value, (int, float, Decimal)):
        # numeric serial on a date-formatted cell
        return Cell("date" if is_date else "number", value)
    return Cell("text", str(value))


def range_ref(rect: Optional[Rect]) -> Optional[str]:
    """A1-style reference for a zero-based inclusive rectangle."""
    if rect is None:
        return None
    min_row, min_col, max_row, max_col = rect
    return (
        f"{get_column_letter(min_col + 1)}{min_row + 1}:"
        f"{get_column_letter(max_col + 1)}{max_row + 1}"
    )


def _load(raw: bytes, data_only: bool):
    try:
        return load_workbook(io.BytesIO(raw), data_only=data_only)
    except Exception as exc:
        raise DecodeError(f"Could not read workbook: {exc}") from exc


def _declared_range(ws) -> Optional[Rect]:
    if ws.max_row == 1 and ws.max_column == 1 and ws.cell(row=1, column=1).value is None:
        return None
    return (ws.min_row - 1, ws.min_column - 1, ws.max_row - 1, ws.max_column - 1)


def _decode_sheet(ws) -> Sheet:
    dimension = _declared_range(ws)
    cells: Dict[Coord, Cell] = {}
    if dimension is not None:
        for row in ws.iter_rows(
            min_row=dimension[0] + 1,
            min_col=dimension[1] + 1,
            max_row=dimension[2] + 1,
            max_col=dimension[3] + 1,
        ):
            for c in row:
                cell = classify_value(c.value, is_date=getattr(c, "is_date", False))
                if cell.kind != "empty":
                    cells[(c.row - 1, c.column - 1)] = cell

    merges = [
        MergeRegion(r.min_row - 1, r.min_col - 1, r.max_row - 1, r.max_col - 1)
        for r in ws.merged_cells.ranges
    ]
    values = [list(row) for row in ws.iter_rows(values_only=True)]
    return Sheet(name=ws.title, cells=cells, dimension=dimension, merges=merges, values=values)


def decode(raw: bytes) -> Workbook:
    """
    Decode XLSX bytes into a Workbook.

    Formula cells carry their cached value (openpyxl data_only mode); a formula
    that was never calculated decodes as an empty cell.
    """
    wb = _load(raw, data_only=True)
    try:
        sheets = [_decode_sheet(ws) for ws in wb.worksheets]
    finally:
        wb.close()
    logger.debug("decoded workbook with %d sheet(s)", len(sheets))
    return Workbook(sheets=sheets)


def extract_sheet_bytes(raw: bytes, sheet_name: str) -> bytes:
    """
    Materialize one sheet as a minimal single-sheet workbook.

    Formulas are kept as formulas so an external engine can evaluate them.
    """
    wb = _load(raw, data_only=False)
    for ws in list(wb.worksheets) + list(wb.chartsheets):
        if ws.title != sheet_name:
            wb.remove(ws)
    if not wb.worksheets:
        raise DecodeError(f'Sheet "{sheet_name}" not present in workbook')
    wb.active = 0
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()
