"""
Conversion pipeline: workbook bytes -> normalized CSV text.

Strategies, tried in order until one yields non-blank text:
1. structured: header detection, table bounds, merge fill, typed rendering
2. raw_grid: the decoder's flattened values, untyped, no header heuristics
3. external_engine: a one-sheet copy rendered by LibreOffice (opt-in)

A sheet without any used range yields "" and never reaches the engine.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from openpyxl.utils import get_column_letter

from . import rules
from .config import Settings
from .engine import ExternalEngine, LibreOfficeEngine
from .errors import ExternalEngineError, ExternalEngineUnavailable, InvalidOption
from .serialize import serialize_csv
from .table import (
    build_merge_map,
    compile_skip_pattern,
    detect_header_row,
    extract_table,
    raw_grid,
    read_rows,
    resolve_bounds,
    select_sheet,
)
from .workbook import Sheet, Workbook, decode, extract_sheet_bytes, range_ref

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionOptions:
    sheet: Union[int, str, None] = None
    delimiter: str = rules.DEFAULT_DELIMITER
    force_quotes: Optional[bool] = None
    fill_merges: bool = False
    # 1-based sheet row number; None means auto-detect
    header_row: Optional[int] = None
    skip_pattern: Optional[str] = None
    columns: Optional[Sequence[str]] = None
    name_blank_headers: bool = False


@dataclass
class ConversionResult:
    csv: str
    strategy: str
    report: Dict[str, Any] = field(default_factory=dict)
    mime_type: str = rules.MIME_TYPE


def _item(issue: str, action: str, row: Optional[int] = None, value: Optional[str] = None) -> Dict[str, Any]:
    return {"row": row, "column": None, "issue": issue, "value": value, "action": action}


def _has_values(values: Sequence[Sequence[Any]]) -> bool:
    return any(v is not None and v != "" for row in values for v in row)


class ConversionPipeline:
    def __init__(self, settings: Optional[Settings] = None, engine: Optional[ExternalEngine] = None) -> None:
        self.settings = settings or Settings()
        if engine is None and self.settings.external_engine_enabled:
            engine = LibreOfficeEngine(self.settings.external_engine_binary)
        self.engine = engine

    def convert(self, raw: bytes, options: Optional[ConversionOptions] = None) -> ConversionResult:
        return self.convert_workbook(decode(raw), options or ConversionOptions(), raw=raw)

    def convert_workbook(
        self,
        workbook: Workbook,
        options: ConversionOptions,
        raw: Optional[bytes] = None,
    ) -> ConversionResult:
        compile_skip_pattern(options.skip_pattern)
        sheet = select_sheet(workbook, options.sheet)
        delimiter = options.delimiter or rules.DEFAULT_DELIMITER
        force_quotes = self.settings.force_quotes if options.force_quotes is None else options.force_quotes

        report: Dict[str, Any] = {
            "sheet": sheet.name,
            "strategy": "empty",
            "header_row": None,
            "header_detected": False,
            "bounds": None,
            "rows": 0,
            "columns": 0,
            "rows_dropped_blank": 0,
            "rows_skipped": 0,
            "warnings": [],
        }

        if sheet.used_range() is None and not _has_values(sheet.values):
            logger.info("sheet %r has no used range, returning empty CSV", sheet.name)
            return ConversionResult("", "empty", report)

        text = self._structured(sheet, options, delimiter, force_quotes, report)
        if text.strip():
            return self._done(text, "structured", report)

        report.update(
            header_row=None, header_detected=False, bounds=None,
            rows=0, columns=0, rows_dropped_blank=0, rows_skipped=0,
        )
        report["warnings"].append(_item("structured_empty", "fallback_raw_grid"))
        logger.info("structured extraction of %r was empty, trying raw grid", sheet.name)
        grid = raw_grid(sheet.values)
        text = serialize_csv(grid, delimiter, force_quotes)
        if text.strip():
            report["rows"] = max(len(grid) - 1, 0)
            report["columns"] = len(grid[0])
            return self._done(text, "raw_grid", report)

        text = self._external(sheet, raw, delimiter, force_quotes, report)
        if text.strip():
            return self._done(text, "external_engine", report)

        logger.info("no strategy produced content for sheet %r", sheet.name)
        return ConversionResult("", "empty", report)

    def _done(self, text: str, strategy: str, report: Dict[str, Any]) -> ConversionResult:
        report["strategy"] = strategy
        logger.info(
            "converted sheet %r via %s: %d row(s) x %d column(s)",
            report["sheet"], strategy, report["rows"], report["columns"],
        )
        return ConversionResult(text, strategy, report)

    def _header_index(self, sheet: Sheet, header_row: int, row_count: int) -> int:
        rect = sheet.used_range()
        top = rect[0] if rect else 0
        index = header_row - 1 - top
        if not 0 <= index < row_count:
            raise InvalidOption(
                f"header_row {header_row} is outside the used range {range_ref(rect)}",
                {"header_row": header_row},
            )
        return index

    def _structured(
        self,
        sheet: Sheet,
        options: ConversionOptions,
        delimiter: str,
        force_quotes: bool,
        report: Dict[str, Any],
    ) -> str:
        merge_map = build_merge_map(sheet.merge_regions()) if options.fill_merges else None
        rows = read_rows(sheet, merge_map)
        if not rows:
            return ""

        if options.header_row is not None:
            header_index = self._header_index(sheet, options.header_row, len(rows))
        else:
            header_index = detect_header_row(
                rows, self.settings.header_scan_limit, self.settings.header_markers
            )
            report["header_detected"] = True

        top, left_col = sheet.used_range()[:2]
        bounds = resolve_bounds(rows, header_index, self.settings.bounds_lookahead)
        if not any(v.strip() for v in rows[header_index]):
            report["warnings"].append(
                _item("header_row_blank", "bounds_from_widest_row", row=top + header_index + 1)
            )

        grid, stats = extract_table(
            rows,
            header_index,
            bounds,
            skip_pattern=options.skip_pattern,
            columns=options.columns,
            name_blank_headers=options.name_blank_headers,
        )
        report.update(stats)
        report["header_row"] = top + header_index + 1
        report["bounds"] = {
            "left": get_column_letter(left_col + bounds[0] + 1),
            "right": get_column_letter(left_col + bounds[1] + 1),
        }
        report["columns"] = len(grid[0]) if grid else 0
        if stats["rows_skipped"]:
            report["warnings"].append(
                _item("rows_skipped", "dropped", value=str(stats["rows_skipped"]))
            )
        # a blank header with no data rows is an empty table, not a row of delimiters
        if not any(v.strip() for row in grid for v in row):
            return ""
        return serialize_csv(grid, delimiter, force_quotes)

    def _external(
        self,
        sheet: Sheet,
        raw: Optional[bytes],
        delimiter: str,
        force_quotes: bool,
        report: Dict[str, Any],
    ) -> str:
        if not self.settings.external_engine_enabled or self.engine is None or raw is None:
            return ""
        try:
            if not self.engine.is_available():
                raise ExternalEngineUnavailable("external engine did not answer the liveness probe")
            rendered = self.engine.render_csv(
                extract_sheet_bytes(raw, sheet.name), self.settings.external_engine_timeout
            )
            grid = raw_grid(csv.reader(io.StringIO(rendered))) if rendered else []
        except ExternalEngineError as exc:
            logger.warning("external engine skipped for sheet %r: %s", sheet.name, exc.message)
            report["warnings"].append(_item(exc.error, "ignored", value=exc.message))
            return ""
        except Exception as exc:
            logger.exception("external engine crashed for sheet %r", sheet.name)
            report["warnings"].append(_item("engine_failed", "ignored", value=str(exc)))
            return ""

        if grid:
            report["rows"] = len(grid) - 1
            report["columns"] = len(grid[0])
        return serialize_csv(grid, delimiter, force_quotes)

    def list_sheets(self, raw: bytes, preview_rows: Optional[int] = None) -> List[Dict[str, Any]]:
        """Diagnostic listing: name, used range and the first rendered rows per sheet."""
        limit = self.settings.preview_rows if preview_rows is None else preview_rows
        workbook = decode(raw)
        listing = []
        for sheet in workbook.sheets:
            listing.append({
                "name": sheet.name,
                "used_range": range_ref(sheet.used_range()),
                "preview": read_rows(sheet, limit=limit) if limit else [],
            })
        return listing
