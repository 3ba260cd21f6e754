# =============================================================================
# Context Builder — Results → Model-Ready Text
# =============================================================================
#
# Stringifies router results for whatever prompt builder sits downstream.
# Structured results are printed as exact values under a "DATA QUERY RESULT"
# banner; ranked chunks are concatenated under "--- Source n ---" headers
# until the token budget is spent.
#
# DESIGN DECISION: Token budgets are counted with tiktoken (cl100k_base), so
# a budget of 2000 tokens matches what the downstream model will count.
# The encoder is loaded once and cached at module level.
# =============================================================================

from __future__ import annotations

import json

import tiktoken

from docquery.models.results import (
    AmbiguousColumnResult,
    AverageResult,
    CountResult,
    DistinctCountResult,
    DistinctValuesResult,
    EmptyResult,
    FieldResults,
    GroupedCountResult,
    GroupResult,
    MaxResult,
    MinResult,
    NoData,
    RankedChunks,
    SelectResult,
    SmallTalk,
    SumResult,
)

MAX_SELECT_ROWS = 50
MAX_LISTED_VALUES = 20
CHUNK_OVERHEAD_TOKENS = 100
TOKEN_ENCODING = "cl100k_base"

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding(TOKEN_ENCODING)
    return _encoder


def count_tokens(text: str) -> int:
    if not text:
        return 0
    return len(_get_encoder().encode(text))


def format_number(value: float | int | None) -> str:
    """Thousands separators, at most two decimals, integers without any."""
    if value is None:
        return "n/a"
    if isinstance(value, int) or float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def format_result(result, question: str = "") -> str:
    """Render any result variant as plain text."""
    if isinstance(result, SmallTalk):
        return ""
    if isinstance(result, NoData):
        return result.message
    if isinstance(result, RankedChunks):
        return build_ranked_context(result)

    lines = ["DATA QUERY RESULT"]
    if question:
        lines.append(f"Query: {question}")
    lines.append("")
    lines.extend(_result_lines(result))

    filters = getattr(result, "filters", None)
    if filters:
        lines.append("")
        lines.append("Filters Applied:")
        lines.extend(f"  - {f}" for f in filters)
    return "\n".join(lines).rstrip() + "\n"


def build_ranked_context(ranked: RankedChunks, max_tokens: int = 2000) -> str:
    """
    Concatenate ranked chunks best-first within a token budget.

    Each chunk costs its token count plus a fixed overhead for its
    header; the first chunk that would exceed the budget stops the list.
    """
    parts: list[str] = []
    used = 0
    for position, chunk in enumerate(ranked.chunks, start=1):
        cost = count_tokens(chunk.text) + CHUNK_OVERHEAD_TOKENS
        if used + cost > max_tokens:
            break
        parts.append(f"--- Source {position} (Relevance: {chunk.score:.1f}) ---\n{chunk.text}")
        used += cost
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _record(row: dict) -> str:
    return json.dumps(row, ensure_ascii=False, default=str)


def _values(values: list) -> str:
    shown = ", ".join(str(v) for v in values[:MAX_LISTED_VALUES])
    return shown + ("..." if len(values) > MAX_LISTED_VALUES else "")


def _result_lines(result) -> list[str]:
    if isinstance(result, CountResult):
        return [f"COUNT: {result.count}"]

    if isinstance(result, GroupedCountResult):
        lines = [f"COUNT BY {result.group_by}:"]
        lines.extend(f"  {g.value}: {g.count}" for g in result.groups)
        lines.append("")
        lines.append(f"TOTAL: {result.total}")
        return lines

    if isinstance(result, DistinctCountResult | DistinctValuesResult):
        return [
            f"DISTINCT {result.target_column}: {result.count}",
            f"Values: {_values(result.values)}",
        ]

    if isinstance(result, SumResult):
        lines = [
            f"SUM of {result.target_column}: {format_number(result.sum)}",
            f"Count: {result.count} rows",
        ]
        if result.outliers_removed:
            lines.append(f"Outliers excluded: {result.outliers_removed}")
        return lines

    if isinstance(result, AverageResult):
        lines = [
            f"AVERAGE of {result.target_column}: {format_number(result.average)}",
            f"Count: {result.count} rows",
            f"Range: {format_number(result.minimum)} - {format_number(result.maximum)}",
        ]
        if result.median is not None:
            lines.append(f"Median: {format_number(result.median)}")
        if result.outliers_removed:
            lines.append(f"Outliers excluded: {result.outliers_removed}")
        return lines

    if isinstance(result, MaxResult):
        lines = [f"MAXIMUM {result.target_column}: {result.maximum}", ""]
        lines.append(f"Top {result.count} Records:")
        lines.extend(f"{i}. {_record(r)}" for i, r in enumerate(result.top_records, start=1))
        return lines

    if isinstance(result, MinResult):
        lines = [f"MINIMUM {result.target_column}: {result.minimum}", ""]
        lines.append(f"Bottom {result.count} Records:")
        lines.extend(f"{i}. {_record(r)}" for i, r in enumerate(result.bottom_records, start=1))
        return lines

    if isinstance(result, SelectResult):
        lines = [f"SELECTED {result.count} ROWS:", ""]
        shown = result.rows[:MAX_SELECT_ROWS]
        lines.extend(f"{i}. {_record(r)}" for i, r in enumerate(shown, start=1))
        if result.count > MAX_SELECT_ROWS:
            lines.append("")
            lines.append(f"... and {result.count - MAX_SELECT_ROWS} more rows")
        return lines

    if isinstance(result, GroupResult):
        lines = [f"GROUPED BY {result.group_by}:", ""]
        lines.extend(f"{g.value}: {g.count} items" for g in result.groups)
        lines.append("")
        lines.append(f"Total Groups: {result.total_groups}")
        lines.append(f"Total Rows: {result.total_rows}")
        return lines

    if isinstance(result, EmptyResult | AmbiguousColumnResult):
        return [f"{result.operation.upper()}: {result.message}"]

    if isinstance(result, FieldResults):
        lines = ["FIELD LOOKUP:", ""]
        for i, match in enumerate(result.results, start=1):
            lines.append(f"{i}. {match.field}: {match.value}")
            lines.append(f"   Source: {match.source}")
            lines.append("")
        lines.append(f"Total matches: {result.count}")
        return lines

    return [json.dumps(result.to_dict(), indent=2, default=str)]
