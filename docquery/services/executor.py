# =============================================================================
# Query Executor — Deterministic Operations over a Table
# =============================================================================
#
# Runs a QueryIntent against a Table:
#
#   1. Apply every filter (a row survives only if all filters match).
#   2. Resolve the column the operation needs. An aggregate with no usable
#      column returns AmbiguousColumnResult; the caller falls back to ranked
#      retrieval instead of guessing.
#   3. Run the operation on the surviving rows. Zero rows gives EmptyResult.
#
# Filters compare in the column's type family:
#   number  → numeric comparison (filter value parsed like a cell)
#   date    → calendar comparison (dd/mm/yyyy by default, ISO always)
#   boolean → equality only
#   string  → trimmed, case-insensitive =, != and contains
# A value that cannot be coerced to the family never matches.
#
# DESIGN DECISION: No LLM in this path.
# Every number in a result is computed here from typed cells. The optional
# OutlierPolicy is the only step that can drop values, it is off by default
# and its effect is reported in `outliers_removed`.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from docquery.models.query import Cell, Filter, QueryIntent
from docquery.models.results import (
    AmbiguousColumnResult,
    AverageResult,
    CountResult,
    DistinctCountResult,
    DistinctValuesResult,
    EmptyResult,
    GroupBucket,
    GroupCount,
    GroupedCountResult,
    GroupResult,
    MaxResult,
    MinResult,
    SelectResult,
    SumResult,
    TabularResult,
)
from docquery.services.tabular import (
    ColumnStats,
    Row,
    Table,
    column_stats,
    is_number,
    parse_date,
    parse_number,
)

logger = logging.getLogger(__name__)

_ORDERING_OPERATORS = frozenset({">", "<", ">=", "<="})
_TRUE_WORDS = frozenset({"true", "yes"})
_FALSE_WORDS = frozenset({"false", "no"})


# ---------------------------------------------------------------------------
# Outlier policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OutlierPolicy:
    """
    Optional IQR trim applied to the values of sum/avg.

    Only triggers when the spread looks suspicious: the largest value is
    more than `ratio_threshold` times the smallest (positive) value, or the
    range exceeds `range_to_mean_threshold` times the mean. The trimmed set
    is used only if at least `min_remaining` values survive.
    """

    ratio_threshold: float = 100.0
    range_to_mean_threshold: float = 10.0
    iqr_multiplier: float = 1.5
    min_remaining: int = 3

    def __post_init__(self) -> None:
        if self.ratio_threshold <= 0 or self.range_to_mean_threshold <= 0:
            raise ValueError("outlier thresholds must be positive")
        if self.iqr_multiplier < 0:
            raise ValueError("iqr_multiplier must be non-negative")
        if self.min_remaining < 1:
            raise ValueError("min_remaining must be at least 1")

    @classmethod
    def from_settings(cls, settings) -> OutlierPolicy | None:
        """The configured policy, or None when the filter is disabled."""
        if not settings.outlier_filter_enabled:
            return None
        return cls(
            ratio_threshold=settings.outlier_ratio_threshold,
            range_to_mean_threshold=settings.outlier_range_to_mean_threshold,
            iqr_multiplier=settings.outlier_iqr_multiplier,
            min_remaining=settings.outlier_min_remaining,
        )

    def is_suspicious(self, values: list[float]) -> bool:
        if len(values) < 2:
            return False
        low, high = min(values), max(values)
        mean = sum(values) / len(values)
        if low > 0 and high > low * self.ratio_threshold:
            return True
        return mean > 0 and (high - low) > mean * self.range_to_mean_threshold

    def apply(self, values: list[float]) -> list[float]:
        """Values with outliers removed, or the input when trimming is unsafe."""
        if not self.is_suspicious(values):
            return values
        ordered = sorted(values)
        q1 = ordered[int(len(ordered) * 0.25)]
        q3 = ordered[int(len(ordered) * 0.75)]
        spread = (q3 - q1) * self.iqr_multiplier
        kept = [v for v in values if q1 - spread <= v <= q3 + spread]
        if len(kept) < self.min_remaining:
            logger.info("Outlier trim left %d values; keeping all", len(kept))
            return values
        logger.info("Outlier trim removed %d of %d values", len(values) - len(kept), len(values))
        return kept


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def filter_matches(
    row: Row,
    flt: Filter,
    column_type: str,
    day_first: bool = True,
) -> bool:
    """Whether one row satisfies one filter."""
    cell = row.get(flt.column)
    if cell is None or flt.value is None:
        return False

    if flt.operator in ("=", "!=") and type(cell) is type(flt.value) and cell == flt.value:
        return flt.operator == "="

    if flt.operator == "contains":
        return str(flt.value).strip().lower() in str(cell).strip().lower()

    if column_type == "number":
        wanted = flt.value if is_number(flt.value) else _as_number(flt.value)
        if wanted is None or not is_number(cell):
            return False
        return _compare(cell, flt.operator, wanted)

    if column_type == "date":
        wanted_date = parse_date(flt.value, day_first)
        cell_date = parse_date(cell, day_first)
        if wanted_date is None or cell_date is None:
            return False
        return _compare(cell_date, flt.operator, wanted_date)

    if column_type == "boolean":
        wanted_bool = _as_bool(flt.value)
        if wanted_bool is None or not isinstance(cell, bool) or flt.operator not in ("=", "!="):
            return False
        return (cell == wanted_bool) == (flt.operator == "=")

    if flt.operator in _ORDERING_OPERATORS:
        return False
    equal = str(cell).strip().lower() == str(flt.value).strip().lower()
    return equal if flt.operator == "=" else not equal


def apply_filters(
    table: Table,
    filters: list[Filter],
    rows: list[Row] | None = None,
    day_first: bool = True,
) -> list[Row]:
    """Rows (of `rows`, default the whole table) matching every filter."""
    candidates = table.rows if rows is None else rows
    if not filters:
        return list(candidates)
    return [
        row for row in candidates
        if all(
            filter_matches(row, f, table.column_type(f.column), day_first)
            for f in filters
        )
    ]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def execute_query(
    table: Table,
    intent: QueryIntent,
    outlier_policy: OutlierPolicy | None = None,
    day_first: bool = True,
) -> TabularResult:
    """
    Execute an intent against a table.

    Args:
        table: The reconstructed table.
        intent: Parsed question.
        outlier_policy: Optional IQR trim for sum/avg.
        day_first: How to read ambiguous numeric dates in date filters.

    Returns:
        One result variant. Never raises for empty or ambiguous queries.
    """
    filters = [f.describe() for f in intent.filters]
    rows = apply_filters(table, intent.filters, day_first=day_first)
    logger.info("Filters kept %d of %d rows", len(rows), len(table.rows))

    column = _operation_column(table, intent)
    if column is None and _needs_column(intent):
        logger.info("No column for %s over %s", intent.operation, list(table.headers))
        return AmbiguousColumnResult(
            operation=intent.operation,
            rows_processed=len(rows),
            filters=filters,
            available_columns=list(table.headers),
        )

    if not rows:
        return EmptyResult(operation=intent.operation, rows_processed=0, filters=filters)

    handler = _HANDLERS[intent.operation]
    return handler(rows, intent, column, filters, outlier_policy)


def sort_rows(rows: list[Row], column: str, descending: bool) -> list[Row]:
    """
    Stable sort by one column.

    Numeric cells are ordered numerically; if the column has no numeric
    cells, strings are ordered case-insensitively. Non-numeric cells follow
    numeric ones and nulls go last, each in their original order.
    """
    numeric = [r for r in rows if is_number(r.get(column))]
    nulls = [r for r in rows if r.get(column) is None]
    others = [r for r in rows if r.get(column) is not None and not is_number(r.get(column))]

    if numeric:
        numeric = sorted(numeric, key=lambda r: r[column], reverse=descending)
    else:
        others = sorted(others, key=lambda r: str(r[column]).casefold(), reverse=descending)
    return numeric + others + nulls


# ---------------------------------------------------------------------------
# Operation handlers
# ---------------------------------------------------------------------------


def _count(rows, intent, column, filters, _policy):
    if intent.group_by:
        groups = _bucket(rows, intent.group_by)
        return GroupedCountResult(
            group_by=intent.group_by,
            groups=[GroupCount(value=value, count=len(members)) for value, members in groups],
            total=len(rows),
            rows_processed=len(rows),
            filters=filters,
        )
    if intent.distinct and column:
        values = _distinct(rows, column)
        return DistinctCountResult(
            target_column=column,
            count=len(values),
            values=values,
            rows_processed=len(rows),
            filters=filters,
        )
    return CountResult(count=len(rows), rows_processed=len(rows), filters=filters)


def _distinct_values(rows, intent, column, filters, _policy):
    values = _distinct(rows, column)
    return DistinctValuesResult(
        target_column=column,
        count=len(values),
        values=values,
        rows_processed=len(rows),
        filters=filters,
    )


def _numeric_values(rows, column, policy) -> tuple[list[float], int]:
    values = [row[column] for row in rows if is_number(row.get(column))]
    if policy is None:
        return values, 0
    kept = policy.apply(values)
    return kept, len(values) - len(kept)


def _sum(rows, intent, column, filters, policy):
    values, removed = _numeric_values(rows, column, policy)
    return SumResult(
        target_column=column,
        sum=sum(values),
        count=len(values),
        outliers_removed=removed,
        rows_processed=len(rows),
        filters=filters,
    )


def _avg(rows, intent, column, filters, policy):
    values, removed = _numeric_values(rows, column, policy)
    stats = _value_stats(column, values)
    return AverageResult(
        target_column=column,
        average=stats.mean,
        count=stats.count,
        minimum=stats.minimum,
        maximum=stats.maximum,
        median=stats.median,
        outliers_removed=removed,
        rows_processed=len(rows),
        filters=filters,
    )


def _max(rows, intent, column, filters, _policy):
    top = sort_rows(rows, column, descending=True)[: intent.limit or 1]
    return MaxResult(
        target_column=column,
        maximum=top[0][column],
        top_records=top,
        count=len(top),
        rows_processed=len(rows),
        filters=filters,
    )


def _min(rows, intent, column, filters, _policy):
    bottom = sort_rows(rows, column, descending=False)[: intent.limit or 1]
    return MinResult(
        target_column=column,
        minimum=bottom[0][column],
        bottom_records=bottom,
        count=len(bottom),
        rows_processed=len(rows),
        filters=filters,
    )


def _select(rows, intent, column, filters, _policy):
    selected = rows
    if intent.distinct:
        key_columns = intent.target_columns or list(rows[0].keys())
        seen: set[str] = set()
        unique = []
        for row in selected:
            key = "|".join(str(row.get(c)) for c in key_columns)
            if key not in seen:
                seen.add(key)
                unique.append(row)
        selected = unique
    if intent.order and column:
        selected = sort_rows(selected, column, descending=intent.order == "desc")
    if intent.limit:
        selected = selected[: intent.limit]
    return SelectResult(
        columns=intent.target_columns or list(rows[0].keys()),
        rows=selected,
        count=len(selected),
        rows_processed=len(rows),
        filters=filters,
    )


def _group(rows, intent, column, filters, _policy):
    groups = _bucket(rows, column)
    return GroupResult(
        group_by=column,
        groups=[
            GroupBucket(value=value, count=len(members), rows=members)
            for value, members in groups
        ],
        total_groups=len(groups),
        total_rows=len(rows),
        rows_processed=len(rows),
        filters=filters,
    )


_Handler = Callable[..., TabularResult]

_HANDLERS: dict[str, _Handler] = {
    "count": _count,
    "distinct": _distinct_values,
    "sum": _sum,
    "avg": _avg,
    "max": _max,
    "min": _min,
    "select": _select,
    "group": _group,
}


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _operation_column(table: Table, intent: QueryIntent) -> str | None:
    """The table header the operation works on, or None."""
    name = intent.target
    if intent.operation == "group":
        name = intent.group_by or intent.target
    column = table.find_column(name) if name else None
    if column is not None and intent.operation in ("sum", "avg"):
        has_numbers = any(is_number(row.get(column)) for row in table.rows)
        return column if has_numbers else None
    return column


def _value_stats(column: str, values: list[float]) -> ColumnStats:
    single = Table(
        headers=(column,),
        rows=[{column: v} for v in values],
        column_types={column: "number"},
    )
    return column_stats(single, column)


def _needs_column(intent: QueryIntent) -> bool:
    return intent.operation in ("sum", "avg", "max", "min", "group", "distinct")


def _bucket(rows: list[Row], column: str) -> list[tuple[Cell, list[Row]]]:
    """Group rows by a column's value, groups in first-seen order."""
    buckets: dict[tuple[type, Cell], tuple[Cell, list[Row]]] = {}
    for row in rows:
        value = row.get(column)
        buckets.setdefault((type(value), value), (value, []))[1].append(row)
    return list(buckets.values())


def _distinct(rows: list[Row], column: str) -> list[Cell]:
    seen: dict[tuple[type, Cell], Cell] = {}
    for row in rows:
        value = row.get(column)
        if value is not None:
            seen.setdefault((type(value), value), value)
    return list(seen.values())


def _as_number(value: Cell) -> int | float | None:
    if isinstance(value, str):
        return parse_number(value)
    return None


def _as_bool(value: Cell) -> bool | None:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return None


def _compare(left, operator: str, right) -> bool:
    if operator == "=":
        return left == right
    if operator == "!=":
        return left != right
    if operator == ">":
        return left > right
    if operator == "<":
        return left < right
    if operator == ">=":
        return left >= right
    if operator == "<=":
        return left <= right
    return False
