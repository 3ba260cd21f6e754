# =============================================================================
# Delimited-Line Helpers — shared by the chunker and the tabular extractor
# =============================================================================
#
# Low-level parsing of delimited text: splitting a line into fields while
# respecting quotes, cleaning header names, recognising the context lines
# the chunker writes into every tabular chunk, and locating the header row.
#
# DESIGN DECISION: Field splitting uses the standard library `csv` module.
# It already implements the quoting rules we need (delimiters inside quotes
# are literal, a doubled quote inside a quoted field is one literal quote),
# so each line is fed to `csv.reader` on its own. Lines are parsed
# individually because rows with a mismatched field count must be skipped
# one at a time rather than corrupting the rest of the table.
# =============================================================================

from __future__ import annotations

import csv
import re

# Lines the chunker (or an upstream summary) writes around tabular data.
# They contain delimiters but are never part of the table.
METADATA_PREFIXES: tuple[str, ...] = (
    "document:",
    "type:",
    "columns:",
    "total rows:",
    "sample data",
    "this table",
    "the data can",
    "file:",
    "language:",
    "---",
)

CANDIDATE_DELIMITERS: tuple[str, ...] = (",", "\t", "|")

HEADER_SEARCH_LINES = 10

_SEPARATOR_ROW = re.compile(r"^\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$")
_HEADER_JUNK = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")


def is_metadata_line(line: str) -> bool:
    """
    True for context/summary lines that must never be read as rows.

    Markdown rules such as `--- | ---` share the `---` prefix but belong to
    the table, so they are not metadata.
    """
    if is_separator_row(line):
        return False
    return line.strip().lower().startswith(METADATA_PREFIXES)


def is_separator_row(line: str) -> bool:
    """True for markdown table rules such as `|---|:---:|`."""
    return bool(_SEPARATOR_ROW.match(line.strip()))


def parse_delimited_line(line: str, delimiter: str = ",") -> list[str]:
    """
    Split one line into stripped fields.

    Pipe-delimited (markdown) lines have their outer pipes removed first.
    """
    if delimiter == "|":
        line = line.strip()
        if line.startswith("|"):
            line = line[1:]
        if line.endswith("|"):
            line = line[:-1]
    reader = csv.reader([line], delimiter=delimiter, skipinitialspace=True)
    fields = next(reader, [])
    return [f.strip() for f in fields]


def clean_header(raw: str) -> str:
    """Strip quotes and punctuation from a header cell, collapse spaces."""
    name = raw.strip().strip("\"'")
    name = _HEADER_JUNK.sub("", name)
    return _WHITESPACE.sub(" ", name).strip()


def clean_headers(raw_headers: list[str]) -> list[str]:
    """
    Clean a header row and make every name unique.

    Blank names become `column_<n>`; repeats get a numeric suffix
    (`Amount`, `Amount_2`).
    """
    headers: list[str] = []
    seen: dict[str, int] = {}
    for position, raw in enumerate(raw_headers, start=1):
        name = clean_header(raw) or f"column_{position}"
        key = name.lower()
        if key in seen:
            seen[key] += 1
            name = f"{name}_{seen[key]}"
        else:
            seen[key] = 1
        headers.append(name)
    return headers


def detect_delimiter(lines: list[str]) -> str | None:
    """
    Pick the delimiter used by the most of the first content lines.

    Returns None when no candidate appears at all. Ties keep the order of
    CANDIDATE_DELIMITERS.
    """
    sample = [
        line for line in lines if line.strip() and not is_metadata_line(line)
    ][:HEADER_SEARCH_LINES]
    best: str | None = None
    best_count = 0
    for delimiter in CANDIDATE_DELIMITERS:
        count = sum(1 for line in sample if delimiter in line)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def find_header_index(lines: list[str], delimiter: str) -> int | None:
    """
    Index of the header line: the first of the first ten non-empty lines
    that contains the delimiter and is not a metadata artifact.
    """
    seen = 0
    for index, line in enumerate(lines):
        if not line.strip():
            continue
        seen += 1
        if seen > HEADER_SEARCH_LINES:
            break
        if delimiter in line and not is_metadata_line(line):
            return index
    return None
