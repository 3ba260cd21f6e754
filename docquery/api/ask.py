# =============================================================================
# Ask API — Document Query Endpoint
# =============================================================================
#
# Provides the POST /ask endpoint that runs the query router over the
# selected documents.
#
# FLOW:
#   1. Receive question + document ids
#   2. Route: small talk → tabular query → field lookup → ranked chunks
#   3. Return the structured result and its plain-text rendering
#
# This endpoint is thin by design: request validation, error handling and
# response mapping. The strategy chain lives in agents/router.py.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from docquery.agents.router import answer
from docquery.api.deps import get_document_provider
from docquery.config import settings
from docquery.models.requests import AskRequest
from docquery.models.responses import AskResponse
from docquery.models.results import RankedChunks
from docquery.services.context import build_ranked_context, format_result
from docquery.services.provider import DocumentProvider

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Answering"])


# ---------------------------------------------------------------------------
# POST /ask — Ask a question about uploaded documents
# ---------------------------------------------------------------------------


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Ask a question about uploaded documents",
    description=(
        "Answers exactly from tables or labelled fields when the documents "
        "contain them, and otherwise returns the most relevant chunks."
    ),
)
async def ask_endpoint(
    request: AskRequest,
    provider: DocumentProvider = Depends(get_document_provider),
) -> AskResponse:
    """
    Run the query router for one question.

    Error handling:
    - Invalid configuration or input → 400 Bad Request
    - Anything unexpected → 500 Internal Server Error
    - No data → 200 with a `no_data` result (not an error)
    """
    logger.info(
        "Ask request: question='%s', document_ids=%s",
        request.question[:80],
        request.document_ids,
    )

    try:
        outcome = await answer(
            question=request.question,
            document_ids=request.document_ids,
            provider=provider,
            limit=request.max_chunks,
        )
    except ValueError as e:
        logger.error("Invalid query: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.exception("Query router failed: %s", e)
        raise HTTPException(status_code=500, detail="Query processing failed") from e

    if isinstance(outcome.result, RankedChunks):
        context = build_ranked_context(outcome.result, max_tokens=settings.context_max_tokens)
    else:
        context = format_result(outcome.result, question=request.question)

    return AskResponse(
        question=request.question,
        strategy=outcome.strategy,
        result=outcome.result,
        context=context,
    )
