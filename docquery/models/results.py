# =============================================================================
# Query Results — One Pydantic Model per Outcome
# =============================================================================
#
# Every outcome the router can produce has its own model with a fixed field
# set, tagged by `kind`. Consumers (the context builder, the HTTP layer, UI
# code) switch on the type instead of probing which keys happen to exist.
#
# DESIGN DECISION: camelCase aliases on the wire.
# Existing consumers read `targetColumn`, `rowsProcessed`, `topRecords`,
# `bottomRecords`. Models use snake_case attributes in Python and dump with
# `by_alias=True` to keep those names. `populate_by_name=True` lets tests and
# internal code construct them with either spelling.
# =============================================================================

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docquery.models.query import Cell

Row = dict[str, Cell]


class _ResultModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_dict(self) -> dict:
        """Serialise with the camelCase field names consumers expect."""
        return self.model_dump(by_alias=True, mode="json")


class _TabularResult(_ResultModel):
    rows_processed: int = Field(description="Rows left after filtering")
    filters: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Tabular results
# ---------------------------------------------------------------------------


class CountResult(_TabularResult):
    kind: Literal["count"] = "count"
    operation: Literal["count"] = "count"
    count: int


class GroupCount(_ResultModel):
    value: Cell
    count: int


class GroupedCountResult(_TabularResult):
    kind: Literal["grouped_count"] = "grouped_count"
    operation: Literal["count"] = "count"
    group_by: str
    groups: list[GroupCount]
    total: int


class DistinctCountResult(_TabularResult):
    kind: Literal["distinct_count"] = "distinct_count"
    operation: Literal["count"] = "count"
    target_column: str
    count: int
    values: list[Cell]


class DistinctValuesResult(_TabularResult):
    kind: Literal["distinct_values"] = "distinct_values"
    operation: Literal["distinct"] = "distinct"
    target_column: str
    count: int
    values: list[Cell]


class SumResult(_TabularResult):
    kind: Literal["sum"] = "sum"
    operation: Literal["sum"] = "sum"
    target_column: str
    sum: float
    count: int = Field(description="Numeric values that contributed")
    outliers_removed: int = 0


class AverageResult(_TabularResult):
    kind: Literal["avg"] = "avg"
    operation: Literal["avg"] = "avg"
    target_column: str
    average: float | None = Field(description="None when no numeric values exist")
    count: int
    minimum: float | None = None
    maximum: float | None = None
    median: float | None = None
    outliers_removed: int = 0


class MaxResult(_TabularResult):
    kind: Literal["max"] = "max"
    operation: Literal["max"] = "max"
    target_column: str
    maximum: Cell
    top_records: list[Row]
    count: int


class MinResult(_TabularResult):
    kind: Literal["min"] = "min"
    operation: Literal["min"] = "min"
    target_column: str
    minimum: Cell
    bottom_records: list[Row]
    count: int


class SelectResult(_TabularResult):
    kind: Literal["select"] = "select"
    operation: Literal["select"] = "select"
    columns: list[str]
    rows: list[Row]
    count: int


class GroupBucket(_ResultModel):
    value: Cell
    count: int
    rows: list[Row]


class GroupResult(_TabularResult):
    kind: Literal["group"] = "group"
    operation: Literal["group"] = "group"
    group_by: str
    groups: list[GroupBucket]
    total_groups: int
    total_rows: int


class EmptyResult(_TabularResult):
    """A valid table where no row survived the filters."""

    kind: Literal["empty"] = "empty"
    operation: str
    message: str = "No data matches the filter criteria"


class AmbiguousColumnResult(_TabularResult):
    """An aggregate was requested but no target column could be determined."""

    kind: Literal["ambiguous_column"] = "ambiguous_column"
    operation: str
    message: str = "Cannot determine which column to aggregate"
    available_columns: list[str] = Field(default_factory=list)


TabularResult = Annotated[
    CountResult
    | GroupedCountResult
    | DistinctCountResult
    | DistinctValuesResult
    | SumResult
    | AverageResult
    | MaxResult
    | MinResult
    | SelectResult
    | GroupResult
    | EmptyResult
    | AmbiguousColumnResult,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Non-tabular results
# ---------------------------------------------------------------------------


class FieldMatch(_ResultModel):
    field: str
    value: str
    source: str
    section: str | None = None
    match_type: Literal["field", "section"] = "field"


class FieldResults(_ResultModel):
    kind: Literal["fields"] = "fields"
    operation: Literal["field_lookup"] = "field_lookup"
    results: list[FieldMatch]

    @property
    def count(self) -> int:
        return len(self.results)


class RankedChunk(_ResultModel):
    document_id: int
    chunk_index: int
    chunk_type: str
    text: str
    score: float
    components: dict[str, float] = Field(default_factory=dict)


class RankedChunks(_ResultModel):
    kind: Literal["ranked_chunks"] = "ranked_chunks"
    chunks: list[RankedChunk]


class SmallTalk(_ResultModel):
    """Greeting or chit-chat: answer naturally without retrieval."""

    kind: Literal["small_talk"] = "small_talk"
    message: str = "Respond naturally; no document retrieval needed"


class NoData(_ResultModel):
    kind: Literal["no_data"] = "no_data"
    message: str = "No structured data or relevant passages found"


Result = Annotated[
    CountResult
    | GroupedCountResult
    | DistinctCountResult
    | DistinctValuesResult
    | SumResult
    | AverageResult
    | MaxResult
    | MinResult
    | SelectResult
    | GroupResult
    | EmptyResult
    | AmbiguousColumnResult
    | FieldResults
    | RankedChunks
    | SmallTalk
    | NoData,
    Field(discriminator="kind"),
]
