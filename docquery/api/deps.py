# =============================================================================
# API Dependencies — FastAPI Dependency Injection
# =============================================================================
#
# DESIGN DECISION: The document provider is a FastAPI dependency.
# Endpoints receive it via Depends(get_document_provider), and tests swap in
# a pre-loaded InMemoryDocumentProvider through `app.dependency_overrides`.
#
# The deployed default is the SQL provider. The in-memory provider starts
# empty and no route adds documents to it, so it only suits embedding the
# engine in a process that loads documents itself.
# =============================================================================

from __future__ import annotations

import logging
from functools import lru_cache

from docquery.config import settings
from docquery.services.provider import (
    DocumentProvider,
    InMemoryDocumentProvider,
    SqlDocumentProvider,
)

logger = logging.getLogger(__name__)


@lru_cache
def get_document_provider() -> DocumentProvider:
    """
    The process-wide document provider selected by `document_provider`.

    Raises:
        ValueError: Unknown provider name in the configuration.
    """
    name = settings.document_provider.lower()
    if name == "memory":
        logger.info("Using in-memory document provider")
        return InMemoryDocumentProvider()
    if name == "sql":
        from docquery.db.engine import init_db

        init_db()
        logger.info("Using SQL document provider (%s)", settings.database_url.split("://")[0])
        return SqlDocumentProvider()
    raise ValueError(f"Unknown document provider: {settings.document_provider!r}")
