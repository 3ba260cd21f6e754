# =============================================================================
# Query Intent Parser — Question → Operation, Columns, Filters
# =============================================================================
#
# Rule-based parsing of a natural-language question against the columns and
# values of a reconstructed table.
#
#   operation  keyword classes checked in a fixed order (count before sum,
#              so "how many ... in total" is a count)
#   targets    columns mentioned in the question, in mention order; for
#              aggregates with no mention, the first numeric column
#   filters    three strategies, accumulated:
#                1. column/value pairs ("level J4", "with level J4",
#                   "J4 level") through one ValueMatcher per distinct value
#                2. capitalised codes matched against any column's values,
#                   only when strategy 1 found nothing
#                3. numeric comparisons ("price > 500", "price over 500")
#                   and date ranges ("after 01/02/2024")
#   grouping   "by <column>" / "per <column>"
#   ordering   highest/greatest/largest/top → desc,
#              lowest/smallest/bottom → asc
#   limit      "top 5", "first 10", "bottom 3", "last 2"
#
# DESIGN DECISION: Rule-based over LLM parsing.
# The whole point of this path is exact, repeatable answers. The same
# question over the same table always yields the same intent.
#
# DESIGN DECISION: ValueMatcher decides literal vs. regex once.
# A column value such as "Rohan Mandal (J4)" contains regex metacharacters.
# Each distinct value is classified once when the matchers are built; unsafe
# values are compared as literal substrings, safe ones through anchored
# patterns.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from docquery.models.query import AGGREGATE_OPERATIONS, Cell, Filter, Operation, QueryIntent
from docquery.services.tabular import Table, parse_number

logger = logging.getLogger(__name__)

OPERATION_PATTERNS: tuple[tuple[Operation, re.Pattern[str]], ...] = (
    ("count", re.compile(r"\b(count|how many|number of)\b")),
    ("sum", re.compile(r"\b(sum|total|add)\b")),
    ("avg", re.compile(r"\b(average|mean|avg)\b")),
    ("max", re.compile(r"\b(max|maximum|highest|largest|biggest|top)\b")),
    ("min", re.compile(r"\b(min|minimum|lowest|smallest|bottom)\b")),
    ("select", re.compile(r"\b(list|show|display|get|find|give me)\b")),
    ("group", re.compile(r"\b(group|categorize|organize|breakdown)\b")),
)

_DESCENDING = re.compile(r"\b(highest|greatest|largest|top|descending)\b")
_ASCENDING = re.compile(r"\b(lowest|smallest|bottom|ascending)\b")
_LIMIT = re.compile(r"\b(top|first|bottom|last)\s+(\d+)\b", re.IGNORECASE)
_DISTINCT = re.compile(r"\b(unique|distinct|different)\b")
_CAPITALISED_TOKEN = re.compile(r"\b[A-Z][A-Z0-9]*\b")
_REGEX_UNSAFE = re.compile(r"[.*+?^${}()|\[\]\\]")

_SYMBOLIC_OPERATORS = r"(>=|<=|!=|=|>|<)"
_NUMBER = r"([+-]?[\d,]*\.?\d+%?)"
_CURRENCY = r"(?:[$₹£€¥]\s*)?"
WORDED_OPERATORS: dict[str, str] = {
    "greater than": ">",
    "more than": ">",
    "above": ">",
    "over": ">",
    "less than": "<",
    "fewer than": "<",
    "below": "<",
    "under": "<",
    "at least": ">=",
    "at most": "<=",
}
_WORDED = "(" + "|".join(sorted(WORDED_OPERATORS, key=len, reverse=True)) + ")"

DATE_RANGE = re.compile(
    r"\b(on|after|before|since|until)\s+"
    r"(\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}-\d{1,2}-\d{1,2})",
    re.IGNORECASE,
)
DATE_OPERATORS: dict[str, str] = {
    "on": "=",
    "after": ">",
    "before": "<",
    "since": ">=",
    "until": "<=",
}


# ---------------------------------------------------------------------------
# Value matching
# ---------------------------------------------------------------------------


def column_pattern(column: str) -> str:
    """Regex for a column name; spaces and underscores are interchangeable."""
    words = [w for w in re.split(r"[\s_]+", column.lower()) if w]
    return r"[\s_]+".join(re.escape(w) for w in words)


@dataclass(frozen=True)
class ValueMatcher:
    """
    Decides whether a question names one specific column value.

    Built once per distinct value. `regex_safe` selects between anchored
    patterns and literal substring checks.
    """

    column: str
    value: Cell
    text: str
    regex_safe: bool
    patterns: tuple[re.Pattern[str], ...] = ()
    literals: tuple[str, ...] = ()

    @classmethod
    def build(cls, column: str, value: Cell) -> ValueMatcher:
        text = str(value).strip().lower()
        column_lower = " ".join(column.lower().replace("_", " ").split())
        if _REGEX_UNSAFE.search(text):
            literals = [
                f"{column_lower} {text}",
                f"{column_lower} is {text}",
                f"have {column_lower} {text}",
                f"with {column_lower} {text}",
                f"at {column_lower} {text}",
                f"{text} {column_lower}",
            ]
            if any(ch.isalpha() for ch in text) and len(text) >= 3:
                literals.append(text)
            return cls(column, value, text, False, literals=tuple(literals))

        col = column_pattern(column)
        val = re.escape(text)
        patterns = [
            rf"(?<!\w){col}\s+(?:is\s+|=\s*)?{val}(?!\w)",
            rf"\b(?:have|has|with|at)\s+{col}\s+{val}(?!\w)",
        ]
        if len(text) >= 2:
            patterns.append(rf"(?<!\w){val}\s+{col}(?:s|es)?(?!\w)")
        return cls(column, value, text, True, patterns=tuple(re.compile(p) for p in patterns))

    def matches(self, lowered_question: str) -> bool:
        if not self.text:
            return False
        if self.regex_safe:
            return any(p.search(lowered_question) for p in self.patterns)
        return any(literal in lowered_question for literal in self.literals)


def build_value_matchers(table: Table) -> dict[str, list[ValueMatcher]]:
    """
    One matcher per distinct value, per column. Longer values come first so
    "J4 Senior" is tried before "J4".
    """
    matchers: dict[str, list[ValueMatcher]] = {}
    for header in table.headers:
        values = table.distinct_values(header)
        built = [ValueMatcher.build(header, v) for v in values]
        built.sort(key=lambda m: len(m.text), reverse=True)
        matchers[header] = built
    return matchers


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def detect_operation(question: str) -> Operation | None:
    lowered = question.lower()
    for operation, pattern in OPERATION_PATTERNS:
        if pattern.search(lowered):
            return operation
    return None


def mentioned_columns(question: str, table: Table) -> list[str]:
    """Headers mentioned in the question, ordered by first mention."""
    lowered = question.lower()
    found: list[tuple[int, str]] = []
    for header in table.headers:
        match = re.search(rf"(?<!\w){column_pattern(header)}(?:s|es)?(?!\w)", lowered)
        if match:
            found.append((match.start(), header))
    found.sort(key=lambda item: item[0])
    return [header for _, header in found]


def extract_filters(question: str, table: Table) -> list[Filter]:
    """Run the three filter strategies and return de-duplicated filters."""
    lowered = question.lower()
    filters: list[Filter] = []

    # Strategy 1: column/value pairs
    for header, matchers in build_value_matchers(table).items():
        for matcher in matchers:
            if matcher.matches(lowered):
                filters.append(Filter(header, "=", matcher.value))
                break

    # Strategy 2: capitalised codes, only when nothing matched above
    if not filters:
        filters.extend(_capitalised_token_filters(question, table))

    # Strategy 3: numeric comparisons and date ranges
    filters.extend(_comparison_filters(lowered, table))
    filters.extend(_date_range_filters(question, table))

    unique = list(dict.fromkeys(filters))
    if unique:
        logger.debug("Filters: %s", ", ".join(f.describe() for f in unique))
    return unique


def parse_query_intent(question: str, table: Table) -> QueryIntent:
    """
    Parse a question into a QueryIntent against a table.

    Args:
        question: Free-text question.
        table: The table the question will run against; its headers and
            distinct values drive column resolution and filter extraction.

    Returns:
        The intent. `target_columns` is empty for an aggregate when no
        column could be resolved.
    """
    lowered = question.lower()
    distinct = bool(_DISTINCT.search(lowered))
    operation = detect_operation(question)
    if operation is None:
        operation = "distinct" if distinct else "select"

    filters = extract_filters(question, table)
    group_by = _group_by_column(lowered, table)
    targets = _resolve_targets(
        operation, mentioned_columns(question, table), filters, group_by, table,
    )

    order = None
    if _DESCENDING.search(lowered):
        order = "desc"
    elif _ASCENDING.search(lowered):
        order = "asc"

    limit = None
    limit_match = _LIMIT.search(question)
    if limit_match and int(limit_match.group(2)) > 0:
        limit = int(limit_match.group(2))

    intent = QueryIntent(
        operation=operation,
        target_columns=targets,
        filters=filters,
        group_by=group_by,
        order=order,
        limit=limit,
        distinct=distinct,
    )
    logger.info(
        "Parsed intent: operation=%s targets=%s filters=%d group_by=%s "
        "order=%s limit=%s distinct=%s",
        intent.operation, intent.target_columns, len(intent.filters),
        intent.group_by, intent.order, intent.limit, intent.distinct,
    )
    return intent


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _resolve_targets(
    operation: Operation,
    mentioned: list[str],
    filters: list[Filter],
    group_by: str | None,
    table: Table,
) -> list[str]:
    """
    Order mentioned columns by how likely each is the column being asked
    about: columns used only as filters or for grouping go last, and for
    aggregates numeric columns go first.
    """
    filter_columns = {f.column for f in filters}
    primary = [c for c in mentioned if c not in filter_columns and c != group_by]
    secondary = [c for c in mentioned if c not in primary]
    ordered = primary + secondary

    if operation in AGGREGATE_OPERATIONS:
        ordered.sort(key=lambda c: table.column_type(c) != "number")
        if not ordered:
            numeric = table.numeric_columns()
            if numeric:
                ordered = [numeric[0]]
    return ordered


def _group_by_column(lowered: str, table: Table) -> str | None:
    best: tuple[int, str] | None = None
    for header in table.headers:
        match = re.search(rf"\b(?:by|per)\s+{column_pattern(header)}(?!\w)", lowered)
        if match and (best is None or match.start() < best[0]):
            best = (match.start(), header)
    return best[1] if best else None


def _capitalised_token_filters(question: str, table: Table) -> list[Filter]:
    filters: list[Filter] = []
    values_by_column = {h: table.distinct_values(h) for h in table.headers}
    for token in _CAPITALISED_TOKEN.findall(question):
        if len(token) < 2:
            continue
        wanted = token.lower()
        for header in table.headers:
            value = next(
                (v for v in values_by_column[header] if str(v).strip().lower() == wanted),
                None,
            )
            if value is not None:
                filters.append(Filter(header, "=", value))
                break
    return filters


def _comparison_filters(lowered: str, table: Table) -> list[Filter]:
    filters: list[Filter] = []
    for header in table.headers:
        col = column_pattern(header)
        symbolic = re.compile(rf"(?<!\w){col}\s*{_SYMBOLIC_OPERATORS}\s*{_CURRENCY}{_NUMBER}")
        worded = re.compile(
            rf"(?<!\w){col}(?:s|es)?\s+(?:is\s+|are\s+|of\s+)?{_WORDED}\s+{_CURRENCY}{_NUMBER}"
        )
        for match in symbolic.finditer(lowered):
            number = parse_number(match.group(2))
            if number is not None:
                filters.append(Filter(header, match.group(1), number))
        for match in worded.finditer(lowered):
            number = parse_number(match.group(2))
            if number is not None:
                filters.append(Filter(header, WORDED_OPERATORS[match.group(1)], number))
    return filters


def _date_range_filters(question: str, table: Table) -> list[Filter]:
    date_column = next((h for h in table.headers if "date" in h.lower()), None)
    if date_column is None:
        return []
    return [
        Filter(date_column, DATE_OPERATORS[m.group(1).lower()], m.group(2))
        for m in DATE_RANGE.finditer(question)
    ]
