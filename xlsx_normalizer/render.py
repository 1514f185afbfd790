"""
Canonical string rendering of cell values.

Rules:
- empty -> ""
- number -> plain decimal, no grouping, no exponent; integral values drop ".0";
  NaN/inf -> ""
- date -> YYYY-MM-DD at midnight, YYYY-MM-DD HH:MM:SS otherwise; invalid -> ""
- boolean -> TRUE / FALSE
- text -> unchanged (escaping belongs to the serializer)
"""

from __future__ import annotations

import datetime as dt
import math
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from openpyxl.utils.datetime import from_excel

from .workbook import Cell, classify_value

DATE_FORMAT = "%Y-%m-%d"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
TIME_FORMAT = "%H:%M:%S"


def render_number(value: Union[int, float, Decimal]) -> str:
    if isinstance(value, int):
        return str(value)
    try:
        number = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, ValueError):
        return ""
    if not number.is_finite():
        return ""
    if number == number.to_integral_value():
        return str(int(number))
    # "f" never produces an exponent
    return format(number.normalize(), "f")


def _to_datetime(value: Any) -> Union[dt.datetime, dt.date, dt.time, None]:
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        try:
            return from_excel(float(value))
        except (ValueError, OverflowError, TypeError):
            return None
    if isinstance(value, str):
        try:
            return dt.datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def render_date(value: Any) -> str:
    moment = _to_datetime(value)
    if moment is None:
        return ""
    if isinstance(moment, dt.datetime):
        if moment.time() == dt.time(0, 0):
            return moment.strftime(DATE_FORMAT)
        return moment.strftime(DATETIME_FORMAT)
    if isinstance(moment, dt.date):
        return moment.strftime(DATE_FORMAT)
    if isinstance(moment, dt.time):
        return moment.strftime(TIME_FORMAT)
    return ""


def render_cell(cell: Cell) -> str:
    kind = cell.kind
    if kind == "empty" or cell.value is None:
        return ""
    if kind == "number":
        return render_number(cell.value)
    if kind == "date":
        return render_date(cell.value)
    if kind == "boolean":
        return "TRUE" if cell.value else "FALSE"
    return str(cell.value)


def render_value(value: Any) -> str:
    """Render a bare value from the flattened view, inferring its kind."""
    return render_cell(classify_value(value))
