# =============================================================================
# Query Intent — Parsed Form of a Natural-Language Question
# =============================================================================
#
# The intent parser turns a question into a QueryIntent; the executor runs a
# QueryIntent against a Table. Keeping the intent a plain value type lets
# both sides be tested independently.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Operation = Literal["count", "sum", "avg", "max", "min", "select", "group", "distinct"]
Operator = Literal["=", "!=", ">", "<", ">=", "<=", "contains"]
Order = Literal["asc", "desc"]

Cell = int | float | bool | str | None

AGGREGATE_OPERATIONS: frozenset[str] = frozenset({"sum", "avg", "max", "min"})


@dataclass(frozen=True)
class Filter:
    """A column/operator/value predicate applied before aggregation."""

    column: str
    operator: Operator
    value: Cell

    def describe(self) -> str:
        return f'{self.column} {self.operator} "{self.value}"'


@dataclass
class QueryIntent:
    """
    Structured form of a question.

    `target_columns` is empty when no column could be resolved; for
    aggregate operations the executor reports that as an ambiguous column
    instead of guessing.
    """

    operation: Operation = "select"
    target_columns: list[str] = field(default_factory=list)
    filters: list[Filter] = field(default_factory=list)
    group_by: str | None = None
    order: Order | None = None
    limit: int | None = None
    distinct: bool = False

    @property
    def target(self) -> str | None:
        return self.target_columns[0] if self.target_columns else None
