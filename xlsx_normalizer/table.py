"""
Table location and extraction.

Responsibilities:
- sheet selection by 1-based index or name
- merge-region lookup (interior cell -> top-left source)
- header row detection over a bounded window of leading rows
- left/right column bounds from the header row
- slicing the sheet into a rectangular grid: one header row, then data rows
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from . import rules
from .errors import InvalidOption, SheetNotFound
from .render import render_cell, render_value
from .workbook import Coord, MergeRegion, Sheet, Workbook

Grid = List[List[str]]
Bounds = Tuple[int, int]


def select_sheet(workbook: Workbook, ref: Any = None) -> Sheet:
    """
    Resolve a sheet reference.

    None or "" selects the first sheet, an int (or a string of digits) is a
    1-based position, anything else is an exact, case-sensitive name.
    """
    names = workbook.sheet_names()

    if isinstance(ref, str):
        stripped = ref.strip()
        if stripped.isdigit():
            ref = int(stripped)
        elif not stripped:
            ref = None

    if ref is None:
        if not workbook.sheets:
            raise SheetNotFound(1, names)
        return workbook.sheets[0]

    if isinstance(ref, bool):
        raise SheetNotFound(str(ref), names)

    if isinstance(ref, int):
        if ref < 1 or ref > len(workbook.sheets):
            raise SheetNotFound(ref, names)
        return workbook.sheets[ref - 1]

    for sheet in workbook.sheets:
        if sheet.name == ref:
            return sheet
    raise SheetNotFound(ref, names)


def build_merge_map(regions: Iterable[MergeRegion]) -> Dict[Coord, Coord]:
    """Map every merged cell except the top-left to the region's top-left."""
    merge_map: Dict[Coord, Coord] = {}
    for region in regions:
        source = (region.start_row, region.start_col)
        for r in range(region.start_row, region.end_row + 1):
            for c in range(region.start_col, region.end_col + 1):
                if (r, c) != source:
                    merge_map[(r, c)] = source
    return merge_map


def _is_blank(value: str) -> bool:
    return not value.strip()


def _non_blank(row: Sequence[str]) -> int:
    return sum(1 for v in row if not _is_blank(v))


def read_rows(
    sheet: Sheet,
    merge_map: Optional[Dict[Coord, Coord]] = None,
    limit: Optional[int] = None,
) -> Grid:
    """
    Render the sheet's used range as a rectangular list of rows.

    Indices in the result are relative to the used range's top-left corner.
    """
    rect = sheet.used_range()
    if rect is None:
        return []
    min_row, min_col, max_row, max_col = rect
    if limit is not None:
        max_row = min(max_row, min_row + limit - 1)
    rows: Grid = []
    for r in range(min_row, max_row + 1):
        row = []
        for c in range(min_col, max_col + 1):
            if merge_map:
                src_r, src_c = merge_map.get((r, c), (r, c))
            else:
                src_r, src_c = r, c
            row.append(render_cell(sheet.cell_at(src_r, src_c)))
        rows.append(row)
    return rows


def _first_non_blank_row(rows: Sequence[Sequence[str]]) -> int:
    for i, row in enumerate(rows):
        if _non_blank(row):
            return i
    return -1


def detect_header_row(
    rows: Sequence[Sequence[str]],
    scan_limit: int = rules.HEADER_SCAN_LIMIT,
    markers: Iterable[str] = rules.HEADER_MARKERS,
) -> int:
    """
    Pick the most likely header row among ``scan_limit`` rows, counted from the
    first non-blank row.

    Score = number of non-blank cells, plus a large bonus when a cell equals one
    of ``markers`` (case-insensitive). Ties favour the earliest row; a marker row
    with at least three non-blank cells wins immediately.
    """
    wanted = {m.strip().lower() for m in markers if m and m.strip()}
    start = _first_non_blank_row(rows)
    if start < 0:
        return 0
    best_index = start
    best_score = -1

    for i, row in enumerate(rows[start : start + scan_limit], start):
        count = _non_blank(row)
        has_marker = bool(wanted) and any(v.strip().lower() in wanted for v in row)
        score = count + (rules.MARKER_BONUS if has_marker else 0)
        if has_marker and count >= rules.MARKER_MIN_CELLS:
            return i
        if score > best_score:
            best_index, best_score = i, score

    return best_index


def _last_non_blank(row: Sequence[str]) -> int:
    for i in range(len(row) - 1, -1, -1):
        if not _is_blank(row[i]):
            return i
    return -1


def resolve_bounds(
    rows: Sequence[Sequence[str]],
    header_index: int,
    lookahead: int = rules.BOUNDS_LOOKAHEAD,
) -> Bounds:
    """Inclusive (left, right) column span of the table under ``header_index``."""
    header = rows[header_index] if 0 <= header_index < len(rows) else []
    right = _last_non_blank(header)
    if right >= 0:
        left = next(i for i, v in enumerate(header) if not _is_blank(v))
        return left, right

    # blank header: size the table from the widest row after it, skipping blank rows
    following = rows[header_index + 1 :]
    start = _first_non_blank_row(following)
    if start < 0:
        return 0, 0
    widest = 0
    for row in following[start : start + lookahead]:
        widest = max(widest, _last_non_blank(row) + 1)
    return 0, max(widest - 1, 0)


def _slice(row: Sequence[str], left: int, width: int) -> List[str]:
    cells = list(row[left : left + width])
    if len(cells) < width:
        cells.extend([""] * (width - len(cells)))
    return cells


def compile_skip_pattern(pattern: Optional[str]) -> Optional["re.Pattern[str]"]:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise InvalidOption(f"Invalid skip pattern {pattern!r}: {exc}") from exc


def extract_table(
    rows: Sequence[Sequence[str]],
    header_index: int,
    bounds: Bounds,
    skip_pattern: Optional[str] = None,
    columns: Optional[Sequence[str]] = None,
    name_blank_headers: bool = False,
) -> Tuple[Grid, Dict[str, int]]:
    """
    Slice ``rows`` into a rectangular grid headed by ``rows[header_index]``.

    Rows above the header are dropped. Every data row is cut to the header's
    span and padded to its width; blank rows and rows whose first cell matches
    ``skip_pattern`` are dropped.
    """
    stats = {"rows": 0, "rows_dropped_blank": 0, "rows_skipped": 0}
    if not rows or not 0 <= header_index < len(rows):
        return [], stats

    left, right = bounds
    skip = compile_skip_pattern(skip_pattern)

    if columns:
        header = [str(c) for c in columns]
    else:
        header = _slice(rows[header_index], left, right - left + 1)
    width = len(header)

    if name_blank_headers:
        header = [
            rules.PLACEHOLDER_HEADER.format(i + 1) if _is_blank(v) else v
            for i, v in enumerate(header)
        ]

    grid: Grid = [header]
    for row in rows[header_index + 1 :]:
        cells = _slice(row, left, width)
        if not any(not _is_blank(v) for v in cells):
            stats["rows_dropped_blank"] += 1
            continue
        if skip is not None and skip.search(cells[0]):
            stats["rows_skipped"] += 1
            continue
        grid.append(cells)

    stats["rows"] = len(grid) - 1
    return grid, stats


def raw_grid(values: Iterable[Sequence[Any]]) -> Grid:
    """Grid from the decoder's flattened view: untyped, no header detection."""
    rendered = [[render_value(v) for v in row] for row in values]
    rendered = [row for row in rendered if _non_blank(row)]
    if not rendered:
        return []
    width = max(len(row) for row in rendered)
    return [_slice(row, 0, width) for row in rendered]
