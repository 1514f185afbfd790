"""
Deterministic conversion rules.

Constants shared by the header heuristics and the CSV writer.
"""

MIME_TYPE = "text/csv"
OUTPUT_ENCODING = "utf-8"

DEFAULT_DELIMITER = ","
ROW_SEPARATOR = "\n"
QUOTE = '"'
# Characters that force quoting in quote-when-necessary mode (besides the delimiter)
QUOTE_TRIGGERS = ('"', "\n", "\r", ";", "\t")

HEADER_SCAN_LIMIT = 50
HEADER_MARKERS = ("date",)
MARKER_BONUS = 1000
MARKER_MIN_CELLS = 3
BOUNDS_LOOKAHEAD = 20

PLACEHOLDER_HEADER = "col_{}"

PREVIEW_ROWS = 5
