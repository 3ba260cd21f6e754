# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API. FastAPI uses
# them for request validation (automatic 422 errors) and for the OpenAPI
# schema at /docs.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    """
    Request body for POST /ask: ask a question about uploaded documents.

    Example:
        {
            "question": "What is the total amount for Electronics?",
            "document_ids": [1, 2]
        }
    """

    question: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="The natural-language question",
        examples=["How many orders are pending?"],
    )

    # Documents to answer from. Unknown ids are skipped, not rejected.
    document_ids: list[int] = Field(
        default_factory=list,
        description="IDs of the documents to query",
        examples=[[1]],
    )

    # Only used when the answer falls back to ranked chunks.
    max_chunks: int | None = Field(
        default=None,
        ge=1,
        le=50,
        description="Maximum ranked chunks to return; defaults to the configured top-k",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"question": "What is the average amount by region?", "document_ids": [1]},
                {"question": "What is the policy number?", "document_ids": [2]},
            ]
        }
    )
