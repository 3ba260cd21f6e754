# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API.
#
# DESIGN DECISION: The structured result is returned as-is.
# Clients get the exact values the executor computed (camelCase keys, as in
# `rowsProcessed`), plus `context`, the same result rendered as plain text
# for a downstream prompt builder.
# =============================================================================

from pydantic import BaseModel, Field

from docquery.models.results import Result


class HealthResponse(BaseModel):
    """Response for GET /health; confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class AskResponse(BaseModel):
    """Response for POST /ask."""

    question: str
    strategy: str = Field(
        description="Strategy that produced the result: small_talk, tabular, "
        "field_lookup, ranked or none",
    )
    result: Result = Field(description="Tagged result; see `kind`")
    context: str = Field(
        default="",
        description="The result rendered as model-ready text",
    )
