# =============================================================================
# FastAPI Application Entry Point
# =============================================================================
#
# Run with:
#   uvicorn docquery.main:app --reload
#
# The document provider is chosen by DOCUMENT_PROVIDER ("sql" by default, or
# "memory"); see docquery/api/deps.py.
# =============================================================================

import logging

from fastapi import FastAPI

from docquery.api.ask import router as ask_router
from docquery.config import settings
from docquery.models.responses import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Exact answers from tables and fields in uploaded documents, "
    "with ranked passages as the fallback.",
)

app.include_router(ask_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
