# =============================================================================
# Tabular Extractor — Rebuild Row/Column Tables from Document Text
# =============================================================================
#
# Turns delimited text (the original upload, or text reassembled from
# chunks) back into a Table whose cells are typed values. Every aggregate the
# query executor computes is computed over these cells, so coercion rules
# here decide what "1,234.50" or "12%" means.
#
# ALGORITHM:
# 1. Pick the delimiter (declared by file type, or detected)
# 2. Locate the header: first of the first ten non-empty lines containing
#    the delimiter that is not a chunk context line
# 3. Parse every following line; skip context lines, repeated header lines,
#    markdown rule rows and rows whose field count differs from the header
# 4. Coerce cells: number → boolean → string (blank → None)
# 5. Infer one type per column by majority vote over non-null cells
#
# DESIGN DECISION: "No table" is a return value, not an exception.
# Most documents are not tables. `extract_table` returns None and the router
# moves on to the next strategy.
#
# DESIGN DECISION: Non-tabular documents need a stricter test.
# A CSV upload is trusted to be a table. For prose, markdown or code a table
# is only recognised on a run of at least three consecutive lines with the
# same field count, so a paragraph with a few commas is not mistaken for one.
# =============================================================================

from __future__ import annotations

import logging
import re
import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime

from docquery.models.documents import Chunk, Document
from docquery.models.query import Cell
from docquery.services.chunker import TABULAR_FILE_TYPES, reassemble
from docquery.services.delimited import (
    clean_headers,
    detect_delimiter,
    find_header_index,
    is_metadata_line,
    is_separator_row,
    parse_delimited_line,
)

logger = logging.getLogger(__name__)

Row = dict[str, Cell]

COLUMN_TYPES: tuple[str, ...] = ("number", "boolean", "date", "string", "unknown")

MIN_TABLE_RUN = 3
MAX_HEADER_CELL_CHARS = 40
MAX_HEADER_CELL_WORDS = 4
MAX_RUN_CELL_CHARS = 80

_CURRENCY_AND_SEPARATORS = re.compile(r"[$₹£€¥,]")
_PLAIN_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)$")
_SUFFIXED_NUMBER = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+))([KMB])$")
_ACCOUNTING_NEGATIVE = re.compile(r"^\((.+)\)$")
_SUFFIX_MULTIPLIERS = {"K": 1e3, "M": 1e6, "B": 1e9}

NUMERIC_DATE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")
ISO_DATE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class Table:
    """
    A reconstructed table.

    Rows are homogeneous: every row has exactly the keys in `headers`.
    `column_types` is inferred once at construction.
    """

    headers: tuple[str, ...]
    rows: list[Row]
    name: str = ""
    document_ids: tuple[int, ...] = ()
    column_types: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.column_types:
            self.column_types = infer_column_types(self.headers, self.rows)

    def column_type(self, column: str) -> str:
        return self.column_types.get(column, "unknown")

    def distinct_values(self, column: str) -> list[Cell]:
        """Non-null values of a column in first-seen order."""
        seen: dict[tuple[type, Cell], Cell] = {}
        for row in self.rows:
            value = row.get(column)
            if value is None:
                continue
            seen.setdefault((type(value), value), value)
        return list(seen.values())

    def numeric_columns(self) -> list[str]:
        return [h for h in self.headers if self.column_types.get(h) == "number"]

    def find_column(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.strip().lower()
        for header in self.headers:
            if header.lower() == wanted:
                return header
        return None


@dataclass
class ColumnStats:
    """Descriptive statistics of one column."""

    column: str
    column_type: str
    count: int
    unique: int
    minimum: float | None = None
    maximum: float | None = None
    total: float | None = None
    mean: float | None = None
    median: float | None = None
    top_values: list[tuple[Cell, int]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Value Coercion
# ---------------------------------------------------------------------------


def is_number(value: object) -> bool:
    """True for int/float cells. Booleans are not numbers here."""
    return isinstance(value, int | float) and not isinstance(value, bool)


def parse_number(raw: str) -> int | float | None:
    """
    Parse a numeric cell, or return None if the text is not a number.

    Handles currency symbols ($ ₹ £ € ¥), thousands separators, percent
    (divided by 100), K/M/B suffixes and accounting negatives `(1,234)`.
    Integral values without a decimal point stay ints. Digits separated by
    inner spaces (phone numbers, codes) are not numbers.
    """
    text = raw.strip()
    negative = False
    accounting = _ACCOUNTING_NEGATIVE.match(text)
    if accounting:
        negative = True
        text = accounting.group(1)

    text = _CURRENCY_AND_SEPARATORS.sub("", text).strip()
    if not text:
        return None

    value: int | float
    if text.endswith("%"):
        body = text[:-1]
        if not _PLAIN_NUMBER.match(body):
            return None
        value = float(body) / 100
    else:
        suffixed = _SUFFIXED_NUMBER.match(text)
        if suffixed:
            value = float(suffixed.group(1)) * _SUFFIX_MULTIPLIERS[suffixed.group(2)]
            if value.is_integer():
                value = int(value)
        elif _PLAIN_NUMBER.match(text):
            value = float(text) if "." in text else int(text)
        else:
            return None

    return -value if negative else value


def coerce_value(raw: str | None) -> Cell:
    """Number, then boolean, then string. Blank cells become None."""
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    number = parse_number(text)
    if number is not None:
        return number
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return text


def is_date_string(value: object) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    return bool(NUMERIC_DATE.match(text) or ISO_DATE.match(text))


def parse_date(value: object, day_first: bool = True) -> date | None:
    """
    Parse `dd/mm/yyyy`, `mm/dd/yyyy` (day_first=False), two-digit years and
    ISO `yyyy-mm-dd`. Returns None for anything else or an impossible date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    iso = ISO_DATE.match(text)
    try:
        if iso:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        numeric = NUMERIC_DATE.match(text)
        if not numeric:
            return None
        first, second, year = (int(g) for g in numeric.groups())
        if len(numeric.group(3)) == 2:
            year += 2000
        day, month = (first, second) if day_first else (second, first)
        return date(year, month, day)
    except ValueError:
        return None


def _cell_kind(value: Cell) -> str:
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if is_date_string(value):
        return "date"
    return "string"


def infer_column_types(headers: tuple[str, ...], rows: list[Row]) -> dict[str, str]:
    """
    Majority vote per column over non-null cells.

    Ties go to "string", the kind every comparison can fall back to.
    Columns with only nulls are "unknown".
    """
    preference = {"string": 3, "number": 2, "date": 1, "boolean": 0}
    types: dict[str, str] = {}
    for header in headers:
        votes = Counter(
            _cell_kind(row[header]) for row in rows if row.get(header) is not None
        )
        if not votes:
            types[header] = "unknown"
            continue
        types[header] = max(votes, key=lambda kind: (votes[kind], preference[kind]))
    return types


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_table(
    text: str,
    delimiter: str | None = None,
    name: str = "",
    document_ids: tuple[int, ...] = (),
) -> Table | None:
    """
    Reconstruct a table from delimited text.

    Args:
        text: Original document text, or text reassembled from chunks.
        delimiter: Field delimiter. Detected from the content when omitted.
        name: Label for the table (usually the filename).
        document_ids: Documents the rows came from.

    Returns:
        The Table, or None when the text has fewer than two non-empty lines,
        no header can be located, or no data row parses.
    """
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    if sum(1 for line in lines if line.strip()) < 2:
        return None

    delimiter = delimiter or detect_delimiter(lines)
    if delimiter is None:
        return None

    header_index = find_header_index(lines, delimiter)
    if header_index is None:
        logger.debug("No header line found in %s", name or "text")
        return None

    header_line = lines[header_index].strip()
    headers = tuple(clean_headers(parse_delimited_line(header_line, delimiter)))
    if len(headers) < 2:
        return None

    rows, skipped = _parse_rows(lines[header_index + 1:], header_line, headers, delimiter)
    if skipped:
        logger.debug("Skipped %d malformed rows in %s", skipped, name or "text")
    if not rows:
        return None

    table = Table(headers=headers, rows=rows, name=name, document_ids=document_ids)
    logger.info(
        "Extracted table %s: %d rows x %d columns",
        name or "<text>", len(rows), len(headers),
    )
    return table


def find_embedded_table(
    text: str,
    name: str = "",
    document_ids: tuple[int, ...] = (),
) -> Table | None:
    """
    Find a table inside a non-tabular document (markdown pipe table, pasted
    TSV/CSV block). Requires a run of at least three consecutive lines with
    the same field count and a short, label-like header row.
    """
    lines = text.replace("\r\n", "\n").split("\n")
    for delimiter in ("|", "\t", ","):
        run = _find_run(lines, delimiter)
        if run is None:
            continue
        start, end = run
        table = extract_table(
            "\n".join(lines[start:end]),
            delimiter=delimiter,
            name=name,
            document_ids=document_ids,
        )
        if table is not None:
            return table
    return None


def extract_tables(document: Document, chunks: list[Chunk]) -> list[Table]:
    """
    All tables recoverable from one document.

    Prefers the losslessly stored original text; otherwise rebuilds the text
    from the chunks. Repeated calls give identical tables.
    """
    text = document.original_text or reconstruct_text(chunks)
    if not text.strip():
        return []

    file_type = (document.file_type or "").lower().lstrip(".")
    if file_type in TABULAR_FILE_TYPES:
        delimiter = "\t" if file_type == "tsv" else None
        table = extract_table(
            text, delimiter=delimiter, name=document.filename,
            document_ids=(document.id,),
        )
    else:
        table = find_embedded_table(
            text, name=document.filename, document_ids=(document.id,),
        )
    return [table] if table is not None else []


def reconstruct_text(chunks: list[Chunk]) -> str:
    """Rebuild source text from a document's chunks."""
    return reassemble(chunks)


def merge_tables(tables: list[Table]) -> Table | None:
    """
    Combine tables from several documents.

    Tables whose headers equal the first table's headers are concatenated;
    tables with other headers are left out.
    """
    if not tables:
        return None
    first = tables[0]
    compatible = [t for t in tables if t.headers == first.headers]
    if len(compatible) == 1:
        if len(tables) > 1:
            logger.info(
                "Tables have different columns; using %s only", first.name,
            )
        return first

    rows: list[Row] = []
    document_ids: list[int] = []
    for table in compatible:
        rows.extend(table.rows)
        document_ids.extend(table.document_ids)
    logger.info("Merged %d tables into %d rows", len(compatible), len(rows))
    return Table(
        headers=first.headers,
        rows=rows,
        name=", ".join(t.name for t in compatible),
        document_ids=tuple(document_ids),
    )


def column_stats(table: Table, column: str, top_n: int = 5) -> ColumnStats:
    """Descriptive statistics for one column of a table."""
    values = [row.get(column) for row in table.rows if row.get(column) is not None]
    column_type = table.column_type(column)
    stats = ColumnStats(
        column=column,
        column_type=column_type,
        count=len(values),
        unique=len(table.distinct_values(column)),
    )
    numbers = [v for v in values if is_number(v)]
    if column_type == "number" and numbers:
        stats.minimum = min(numbers)
        stats.maximum = max(numbers)
        stats.total = sum(numbers)
        stats.mean = stats.total / len(numbers)
        stats.median = statistics.median(numbers)
    else:
        stats.top_values = Counter(values).most_common(top_n)
    return stats


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _parse_rows(
    lines: list[str],
    header_line: str,
    headers: tuple[str, ...],
    delimiter: str,
) -> tuple[list[Row], int]:
    rows: list[Row] = []
    skipped = 0
    for line in lines:
        stripped = line.strip()
        if not stripped or is_metadata_line(stripped) or stripped == header_line:
            continue
        if delimiter == "|" and is_separator_row(stripped):
            continue
        fields = parse_delimited_line(stripped, delimiter)
        if len(fields) != len(headers):
            skipped += 1
            continue
        rows.append(
            {h: coerce_value(v) for h, v in zip(headers, fields, strict=True)}
        )
    return rows, skipped


def _field_count(line: str, delimiter: str) -> int:
    if delimiter not in line or is_metadata_line(line):
        return 0
    if delimiter == "|" and is_separator_row(line):
        return -1
    return len(parse_delimited_line(line, delimiter))


def _looks_like_header(line: str, delimiter: str) -> bool:
    cells = parse_delimited_line(line, delimiter)
    for cell in cells:
        if len(cell) > MAX_HEADER_CELL_CHARS or len(cell.split()) > MAX_HEADER_CELL_WORDS:
            return False
        value = coerce_value(cell)
        if value is not None and not isinstance(value, str):
            return False
    return True


def _find_run(lines: list[str], delimiter: str) -> tuple[int, int] | None:
    """First [start, end) run of lines that looks like an embedded table."""
    index = 0
    while index < len(lines):
        count = _field_count(lines[index], delimiter)
        if count < 2 or not _looks_like_header(lines[index], delimiter):
            index += 1
            continue
        end = index + 1
        data_lines = 1
        while end < len(lines):
            line_count = _field_count(lines[end], delimiter)
            if line_count == -1:
                end += 1
                continue
            if line_count != count:
                break
            cells = parse_delimited_line(lines[end], delimiter)
            if any(len(cell) > MAX_RUN_CELL_CHARS for cell in cells):
                break
            data_lines += 1
            end += 1
        if data_lines >= MIN_TABLE_RUN:
            return index, end
        index = end if end > index + 1 else index + 1
    return None
