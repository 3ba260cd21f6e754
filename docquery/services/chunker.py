# =============================================================================
# Structure-Aware Chunker
# =============================================================================
#
# Splits decoded document text into typed, metadata-tagged chunks:
#
#   tabular  → one summary chunk + windows of N data rows with overlap,
#              each window repeating the header line
#   code     → blocks split at top-level function/class boundaries
#   markdown → sections split at headings, long sections sub-split
#   prose    → paragraph-boundary chunks with a trailing overlap
#
# DESIGN DECISION: Character/row based, not token based.
# Chunks feed deterministic extractors and a lexical scorer, not an
# embedding model, so sizes are expressed in characters (or data rows for
# tables).
#
# DESIGN DECISION: Every chunk's new content is an exact slice of the source.
# A chunk's text is `context + slice`, where the context (file preamble,
# repeated header, overlap from the previous chunk) comes first and
# `content_start` marks where the slice begins. The slices of all non-summary
# chunks partition the cleaned source, so `reassemble()` rebuilds it and the
# tabular extractor can work from chunks when the original upload was not
# stored.
# =============================================================================

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from itertools import accumulate
from typing import Any

from docquery.models.documents import Chunk, ChunkType
from docquery.services.delimited import (
    clean_headers,
    detect_delimiter,
    find_header_index,
    is_metadata_line,
    parse_delimited_line,
)

logger = logging.getLogger(__name__)

TABULAR_FILE_TYPES: frozenset[str] = frozenset({"csv", "tsv", "xlsx", "xls"})
CODE_FILE_TYPES: frozenset[str] = frozenset({
    "js", "jsx", "ts", "tsx", "py", "java", "cpp", "c", "go",
    "rb", "php", "rs", "rust", "swift",
})
MARKDOWN_FILE_TYPES: frozenset[str] = frozenset({"md", "markdown"})
STRUCTURED_FILE_TYPES: frozenset[str] = frozenset({"html", "htm", "xml"})

_MARKDOWN_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_MARKDOWN_HINT = re.compile(r"^#{1,6}\s|\[[^\]\n]+\]\([^)\n]+\)", re.MULTILINE)
_FENCE = re.compile(r"^\s*(```|~~~)")
_CODE_BOUNDARY = re.compile(
    r"^(?:export\s+(?:default\s+)?)?(?:async\s+)?"
    r"(?:def|class|function|func|fn|interface|struct|impl)\b"
    r"|^(?:export\s+)?(?:const|let|var)\s+\w+\s*=\s*(?:async\s+)?"
    r"(?:function\b|\([^)]*\)\s*=>|\w+\s*=>)"
    r"|^(?:public|private|protected|static)\s"
)
_DECORATOR = re.compile(r"^@\w")
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
_SCRIPT_OR_STYLE = re.compile(r"<(script|style)\b.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_BLOCK_TAG = re.compile(r"<\s*(br|/p|/div|/li|/tr|/h[1-6]|/table|/section)\b[^>]*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]+>")


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class _Piece:
    """A chunk under construction, before indices and totals are known."""

    text: str
    chunk_type: ChunkType
    content_start: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def clean_text(text: str) -> str:
    """Strip a byte-order mark and normalise line endings to `\\n`."""
    return text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")


def file_extension(filename: str, file_type: str | None = None) -> str:
    """Lower-case extension from the declared type, else from the filename."""
    declared = (file_type or "").lower().strip()
    if "/" in declared:  # MIME types such as text/csv
        declared = declared.rsplit("/", 1)[1]
    declared = declared.lstrip(".")
    if declared:
        return declared
    if "." in filename:
        return filename.rsplit(".", 1)[1].lower()
    return ""


def detect_document_type(text: str, filename: str, file_type: str | None = None) -> str:
    """
    Classify a document as "tabular", "code", "markdown", "structured" or
    "text".
    """
    ext = file_extension(filename, file_type)
    lines = [line for line in text.split("\n") if line.strip()]

    if ext in TABULAR_FILE_TYPES and len(lines) > 2:
        if any("," in line or "\t" in line for line in lines[:3]):
            return "tabular"
    if ext in CODE_FILE_TYPES:
        return "code"
    if ext in MARKDOWN_FILE_TYPES or _MARKDOWN_HINT.search(text):
        return "markdown"
    if ext in STRUCTURED_FILE_TYPES:
        return "structured"
    return "text"


def chunk_document(
    text: str,
    file_type: str | None = None,
    filename: str = "document",
    document_id: int = 0,
    *,
    rows_per_chunk: int = 10,
    overlap_rows: int = 2,
    summary_samples: int = 10,
    code_max_chars: int = 1500,
    markdown_max_chars: int = 2000,
    prose_chunk_size: int = 1000,
    prose_overlap: int = 200,
    prose_min_chunk: int = 200,
) -> list[Chunk]:
    """
    Split a document into typed chunks.

    Args:
        text: Decoded document text.
        file_type: Declared type (extension or MIME type).
        filename: Original filename, written into context preambles.
        document_id: Owning document id stamped on every chunk.
        rows_per_chunk: Data rows per tabular window.
        overlap_rows: Rows repeated from the previous tabular window.
        summary_samples: First-column sample values in the table summary.
        code_max_chars: Soft cap for code chunks (definitions are never cut).
        markdown_max_chars: Sections longer than this are sub-split.
        prose_chunk_size: Target size of prose chunks.
        prose_overlap: Trailing characters carried into the next prose chunk.
        prose_min_chunk: A prose chunk is not closed before reaching this size.

    Returns:
        Chunks in document order. Pure function of its inputs.
    """
    if rows_per_chunk < 1 or not 0 <= overlap_rows < rows_per_chunk:
        raise ValueError("overlap_rows must be in [0, rows_per_chunk)")
    if not 0 <= prose_overlap < prose_chunk_size:
        raise ValueError("prose_overlap must be in [0, prose_chunk_size)")

    text = clean_text(text)
    if not text.strip():
        return []

    doc_type = detect_document_type(text, filename, file_type)
    pieces: list[_Piece] | None = None

    if doc_type == "tabular":
        delimiter = "\t" if file_extension(filename, file_type) == "tsv" else None
        pieces = _chunk_tabular(
            text, filename, delimiter, rows_per_chunk, overlap_rows, summary_samples,
        )
        if pieces is None:
            logger.warning("No table found in %s; chunking as prose", filename)
            doc_type = "text"
    elif doc_type == "code":
        pieces = _chunk_code(text, filename, code_max_chars)
    elif doc_type == "markdown":
        pieces = _chunk_markdown(text, markdown_max_chars)
    elif doc_type == "structured":
        text = strip_markup(text)

    if pieces is None:
        pieces = _chunk_prose(text, prose_chunk_size, prose_overlap, prose_min_chunk)

    chunks = _finalize(pieces, document_id, filename, doc_type)
    logger.info(
        "Chunked %s (%s) into %d chunks", filename, doc_type, len(chunks),
    )
    return chunks


def reassemble(chunks: list[Chunk]) -> str:
    """
    Concatenate the new content of each chunk in index order.

    Summary chunks contribute nothing. For every input except markup the
    result equals `clean_text(source)` modulo whitespace normalisation.
    """
    ordered = sorted(chunks, key=lambda c: c.index)
    return "".join(c.content for c in ordered if not c.is_summary)


def strip_markup(text: str) -> str:
    """Reduce HTML/XML to its visible text, keeping block breaks."""
    text = _SCRIPT_OR_STYLE.sub("", text)
    text = _BLOCK_TAG.sub("\n", text)
    text = _ANY_TAG.sub("", text)
    return html.unescape(text)


# ---------------------------------------------------------------------------
# Tabular
# ---------------------------------------------------------------------------


def _line_starts(text: str) -> list[int]:
    lines = text.split("\n")
    return [0, *accumulate(len(line) + 1 for line in lines[:-1])]


def _chunk_tabular(
    text: str,
    filename: str,
    delimiter: str | None,
    rows_per_chunk: int,
    overlap_rows: int,
    summary_samples: int,
) -> list[_Piece] | None:
    lines = text.split("\n")
    delimiter = delimiter or detect_delimiter(lines)
    if delimiter is None:
        return None
    header_index = find_header_index(lines, delimiter)
    if header_index is None:
        return None

    data = [
        i for i in range(header_index + 1, len(lines))
        if lines[i].strip() and not is_metadata_line(lines[i])
    ]
    if not data:
        return None

    starts = _line_starts(text)
    header_line = lines[header_index].strip()
    columns = clean_headers(parse_delimited_line(header_line, delimiter))
    column_list = ", ".join(columns)
    preamble = f"Document: {filename}\nType: CSV Data Table\nColumns: {column_list}\n\n"

    pieces = [_table_summary(filename, lines, data, columns, delimiter, summary_samples)]

    total = len(data)
    step = rows_per_chunk - overlap_rows
    start, new_from = 0, 0
    while True:
        end = min(start + rows_per_chunk, total)
        slice_end = starts[data[end]] if end < total else len(text)
        if start == 0:
            context = preamble
            content = text[:slice_end]
        else:
            repeated = [header_line, *(lines[data[j]] for j in range(start, new_from))]
            context = preamble + "\n".join(repeated) + "\n"
            content = text[starts[data[new_from]]:slice_end]
        pieces.append(_Piece(
            text=context + content,
            chunk_type=ChunkType.CSV,
            content_start=len(context),
            metadata={
                "columns": columns,
                "header_line": header_line,
                "delimiter": delimiter,
                "row_start": start + 1,
                "row_end": end,
                "row_count": end - start,
            },
        ))
        if end >= total:
            break
        new_from = end
        start += step
    return pieces


def _table_summary(
    filename: str,
    lines: list[str],
    data: list[int],
    columns: list[str],
    delimiter: str,
    samples: int,
) -> _Piece:
    sample_values = []
    for i in data[:samples]:
        fields = parse_delimited_line(lines[i], delimiter)
        if fields and fields[0]:
            sample_values.append(fields[0])
    column_list = ", ".join(columns)
    text = (
        f"Document: {filename}\n"
        f"Type: CSV Summary\n"
        f"Total Rows: {len(data)}\n"
        f"Columns: {column_list}\n\n"
        f"Sample Data (First Column):\n"
        + "".join(f"- {value}\n" for value in sample_values)
        + f"\nThis table contains {len(data)} rows with {len(columns)} columns.\n"
        f"The data can be queried by: {column_list}"
    )
    return _Piece(
        text=text,
        chunk_type=ChunkType.CSV_SUMMARY,
        content_start=len(text),
        metadata={"columns": columns, "total_rows": len(data), "is_summary": True},
    )


# ---------------------------------------------------------------------------
# Code
# ---------------------------------------------------------------------------


def _chunk_code(text: str, filename: str, max_chars: int) -> list[_Piece]:
    language = file_extension(filename)
    preamble = f"File: {filename}\nLanguage: {language}\n\n"
    lines = text.split("\n")
    starts = _line_starts(text)

    boundaries = [0]
    for i, line in enumerate(lines):
        if i == 0:
            continue
        previous = lines[i - 1]
        if _DECORATOR.match(line) and not _DECORATOR.match(previous):
            boundaries.append(i)
        elif _CODE_BOUNDARY.match(line) and not _DECORATOR.match(previous):
            boundaries.append(i)
    block_spans = [
        (starts[b], starts[boundaries[k + 1]] if k + 1 < len(boundaries) else len(text))
        for k, b in enumerate(boundaries)
    ]

    pieces: list[_Piece] = []
    for a, b in _accumulate_spans(text, block_spans, max_chars):
        pieces.append(_Piece(
            text=preamble + text[a:b],
            chunk_type=ChunkType.CODE,
            content_start=len(preamble),
            metadata={"language": language},
        ))
    return pieces


def _accumulate_spans(
    text: str,
    spans: list[tuple[int, int]],
    max_chars: int,
) -> list[tuple[int, int]]:
    """Merge consecutive spans while the merged span stays within max_chars."""
    merged: list[tuple[int, int]] = []
    current: tuple[int, int] | None = None
    for a, b in spans:
        if current is None:
            current = (a, b)
        elif b - current[0] > max_chars:
            merged.append(current)
            current = (a, b)
        else:
            current = (current[0], b)
    if current is not None:
        merged.append(current)
    return [(a, b) for a, b in merged if text[a:b].strip()]


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


def _chunk_markdown(text: str, max_chars: int) -> list[_Piece]:
    lines = text.split("\n")
    starts = _line_starts(text)

    headings: list[tuple[int, int, str]] = []  # (line index, level, title)
    in_fence = False
    for i, line in enumerate(lines):
        if _FENCE.match(line):
            in_fence = not in_fence
            continue
        match = None if in_fence else _MARKDOWN_HEADING.match(line)
        if match:
            headings.append((i, len(match.group(1)), match.group(2)))

    sections: list[tuple[int, int, int, str | None]] = []  # (start line, end line, level, title)
    if not headings or headings[0][0] > 0:
        first = headings[0][0] if headings else len(lines)
        sections.append((0, first, 0, None))
    for k, (i, level, title) in enumerate(headings):
        end = headings[k + 1][0] if k + 1 < len(headings) else len(lines)
        sections.append((i, end, level, title))

    pieces: list[_Piece] = []
    for first_line, end_line, level, title in sections:
        a = starts[first_line]
        b = starts[end_line] if end_line < len(lines) else len(text)
        if not text[a:b].strip():
            continue
        metadata = {"heading": title, "level": level}
        if b - a <= max_chars:
            pieces.append(_Piece(text[a:b], ChunkType.MARKDOWN, 0, metadata))
            continue

        line_spans = [
            (starts[i], starts[i + 1] if i + 1 < len(lines) else len(text))
            for i in range(first_line, end_line)
        ]
        context = f"{lines[first_line].strip()}\n\n" if title else ""
        for part, (pa, pb) in enumerate(_accumulate_spans(text, line_spans, max_chars)):
            prefix = context if part > 0 else ""
            pieces.append(_Piece(
                text=prefix + text[pa:pb],
                chunk_type=ChunkType.MARKDOWN,
                content_start=len(prefix),
                metadata={**metadata, "part": part + 1},
            ))
    return pieces


# ---------------------------------------------------------------------------
# Prose
# ---------------------------------------------------------------------------


def _paragraph_spans(text: str) -> list[tuple[int, int]]:
    spans = []
    position = 0
    for match in _PARAGRAPH_BREAK.finditer(text):
        spans.append((position, match.end()))
        position = match.end()
    if position < len(text):
        spans.append((position, len(text)))
    return spans


def _split_oversized(text: str, a: int, b: int, size: int) -> list[tuple[int, int]]:
    """Split a span at sentence ends, then at whitespace, then hard."""
    if b - a <= size:
        return [(a, b)]

    sentence_spans = []
    position = a
    for match in _SENTENCE_END.finditer(text, a, b):
        sentence_spans.append((position, match.end()))
        position = match.end()
    if position < b:
        sentence_spans.append((position, b))

    result = []
    for sa, sb in sentence_spans:
        while sb - sa > size:
            cut = text.rfind(" ", sa + 1, sa + size)
            cut = cut + 1 if cut > sa else sa + size
            result.append((sa, cut))
            sa = cut
        result.append((sa, sb))
    return result


def _chunk_prose(text: str, size: int, overlap: int, min_chunk: int) -> list[_Piece]:
    spans: list[tuple[int, int]] = []
    for a, b in _paragraph_spans(text):
        spans.extend(_split_oversized(text, a, b, size))

    bounds: list[tuple[int, int]] = []
    current: tuple[int, int] | None = None
    for a, b in spans:
        if current is None:
            current = (a, b)
            continue
        too_big = b - current[0] > size
        big_enough = current[1] - current[0] >= min_chunk
        if too_big and big_enough:
            bounds.append(current)
            current = (a, b)
        else:
            current = (current[0], b)
    if current is not None:
        bounds.append(current)

    pieces: list[_Piece] = []
    previous = ""
    for a, b in bounds:
        content = text[a:b]
        if not content.strip():
            continue
        tail = _overlap_tail(previous, overlap)
        prefix = f"{tail}\n\n" if tail else ""
        pieces.append(_Piece(prefix + content, ChunkType.TEXT, len(prefix)))
        previous = content
    return pieces


def _overlap_tail(previous: str, overlap: int) -> str:
    """Last `overlap` characters of the previous chunk, starting on a word."""
    if not previous or overlap <= 0:
        return ""
    tail = previous[-overlap:]
    if len(previous) > overlap and not previous[-overlap - 1].isspace():
        space = tail.find(" ")
        tail = tail[space + 1:] if space != -1 else ""
    return tail.strip()


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _finalize(
    pieces: list[_Piece],
    document_id: int,
    filename: str,
    doc_type: str,
) -> list[Chunk]:
    total = len(pieces)
    chunks = []
    for index, piece in enumerate(pieces):
        metadata = {
            **piece.metadata,
            "filename": filename,
            "doc_type": doc_type,
            "chunk_index": index,
            "total_chunks": total,
            "char_count": len(piece.text),
            "word_count": len(piece.text.split()),
        }
        chunks.append(Chunk(
            document_id=document_id,
            index=index,
            text=piece.text,
            chunk_type=piece.chunk_type,
            metadata=metadata,
            content_start=piece.content_start,
        ))
    return chunks
