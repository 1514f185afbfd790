"""
CSV serialization of a rectangular grid.

Output is RFC-4180 style text with "\n" between rows and no trailing
separator. The writer is a pure function: the same grid and policy always
produce the same bytes.
"""

from __future__ import annotations

from typing import Sequence

from . import rules


def needs_quotes(field: str, delimiter: str) -> bool:
    if delimiter in field:
        return True
    return any(ch in field for ch in rules.QUOTE_TRIGGERS)


def escape_field(field: str, delimiter: str = rules.DEFAULT_DELIMITER, force_quotes: bool = False) -> str:
    if force_quotes or needs_quotes(field, delimiter):
        return rules.QUOTE + field.replace(rules.QUOTE, rules.QUOTE * 2) + rules.QUOTE
    return field


def serialize_csv(
    grid: Sequence[Sequence[str]],
    delimiter: str = rules.DEFAULT_DELIMITER,
    force_quotes: bool = False,
) -> str:
    """
    Render ``grid`` as delimited text.

    A field is quoted when it contains the delimiter, a double quote, CR, LF,
    a semicolon or a tab; with ``force_quotes`` every field is quoted. Internal
    double quotes are always doubled inside quoted fields.
    """
    delimiter = delimiter or rules.DEFAULT_DELIMITER
    lines = [
        delimiter.join(escape_field(str(v), delimiter, force_quotes) for v in row)
        for row in grid
    ]
    return rules.ROW_SEPARATOR.join(lines)
