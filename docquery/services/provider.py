# =============================================================================
# Document Providers — Chunk & Text Retrieval
# =============================================================================
#
# The query engine never owns storage. It reads documents and their chunks
# through the DocumentProvider protocol; the read is the only blocking call
# in a request, and the router runs it in a worker thread.
#
# Two implementations:
# - InMemoryDocumentProvider: chunks on add_document; used by tests and
#   by single-process deployments that ingest at startup.
# - SqlDocumentProvider: reads the documents/chunks tables through a sync
#   SQLAlchemy session (SQLite by default).
#
# DESIGN DECISION: Protocol instead of an abstract base class.
# Any object with the three read methods works, so callers can adapt an
# existing store without subclassing.
# =============================================================================

from __future__ import annotations

import logging
import threading
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from docquery.config import Settings, settings as default_settings
from docquery.db import models as orm
from docquery.db.engine import get_sync_session
from docquery.models.documents import Chunk, ChunkType, Document
from docquery.services.chunker import chunk_document

logger = logging.getLogger(__name__)


class DocumentProvider(Protocol):
    """Read-only access to documents and their chunks."""

    def get_document(self, document_id: int) -> Document | None: ...

    def get_chunks(self, document_id: int) -> list[Chunk]: ...

    def get_original_text(self, document_id: int) -> str | None: ...


def chunk_with_settings(document: Document, config: Settings | None = None) -> list[Chunk]:
    """Chunk a document using the configured window sizes."""
    config = config or default_settings
    return chunk_document(
        document.text,
        file_type=document.file_type,
        filename=document.filename,
        document_id=document.id,
        rows_per_chunk=config.tabular_rows_per_chunk,
        overlap_rows=config.tabular_overlap_rows,
        summary_samples=config.tabular_summary_samples,
        code_max_chars=config.code_chunk_max_chars,
        markdown_max_chars=config.markdown_section_max_chars,
        prose_chunk_size=config.prose_chunk_size,
        prose_overlap=config.prose_chunk_overlap,
        prose_min_chunk=config.prose_min_chunk,
    )


# ---------------------------------------------------------------------------
# In-memory provider
# ---------------------------------------------------------------------------


class InMemoryDocumentProvider:
    """Holds documents and their chunks in process memory."""

    def __init__(self, config: Settings | None = None):
        self._config = config or default_settings
        self._documents: dict[int, Document] = {}
        self._chunks: dict[int, list[Chunk]] = {}
        self._lock = threading.Lock()
        self._next_id = 1

    def add_document(
        self,
        text: str,
        filename: str,
        file_type: str | None = None,
        original_text: str | None = None,
        document_id: int | None = None,
    ) -> Document:
        """
        Register a document and chunk it.

        Args:
            text: Decoded document text.
            filename: Original filename; its extension is the default type.
            file_type: Declared type ("csv", "md", ...).
            original_text: Lossless original, when ingestion kept it.
            document_id: Explicit id; allocated when omitted.

        Returns:
            The stored Document.
        """
        with self._lock:
            if document_id is None:
                document_id = self._next_id
            self._next_id = max(self._next_id, document_id + 1)

        if file_type is None:
            file_type = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        document = Document(
            id=document_id,
            filename=filename,
            file_type=file_type,
            text=text,
            original_text=original_text,
        )
        chunks = chunk_with_settings(document, self._config)

        with self._lock:
            self._documents[document_id] = document
            self._chunks[document_id] = chunks
        logger.info(
            "Added document %d (%s): %d chunks", document_id, filename, len(chunks),
        )
        return document

    def get_document(self, document_id: int) -> Document | None:
        return self._documents.get(document_id)

    def get_chunks(self, document_id: int) -> list[Chunk]:
        return list(self._chunks.get(document_id, []))

    def get_original_text(self, document_id: int) -> str | None:
        document = self._documents.get(document_id)
        return document.original_text if document else None


# ---------------------------------------------------------------------------
# SQL provider
# ---------------------------------------------------------------------------


class SqlDocumentProvider:
    """
    Reads documents and chunks from the relational store.

    `session_factory` defaults to the application engine; tests pass a
    factory bound to a temporary SQLite file.
    """

    def __init__(self, session_factory: sessionmaker | None = None, config: Settings | None = None):
        self._session_factory = session_factory
        self._config = config or default_settings

    def add_document(
        self,
        text: str,
        filename: str,
        file_type: str | None = None,
        original_text: str | None = None,
    ) -> Document:
        """Persist a document and its chunks; returns the stored Document."""
        if file_type is None:
            file_type = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

        with get_sync_session(self._session_factory) as session:
            row = orm.Document(
                filename=filename,
                file_type=file_type,
                text=text,
                original_text=original_text,
            )
            session.add(row)
            session.flush()

            document = _to_document(row)
            chunks = chunk_with_settings(document, self._config)
            for chunk in chunks:
                session.add(orm.Chunk(
                    document_id=row.id,
                    chunk_index=chunk.index,
                    chunk_type=chunk.chunk_type.value,
                    content=chunk.text,
                    content_start=chunk.content_start,
                    metadata_=chunk.metadata,
                ))

        logger.info(
            "Stored document %d (%s): %d chunks", document.id, filename, len(chunks),
        )
        return document

    def get_document(self, document_id: int) -> Document | None:
        with get_sync_session(self._session_factory) as session:
            row = session.get(orm.Document, document_id)
            return _to_document(row) if row is not None else None

    def get_chunks(self, document_id: int) -> list[Chunk]:
        with get_sync_session(self._session_factory) as session:
            rows = session.scalars(
                select(orm.Chunk)
                .where(orm.Chunk.document_id == document_id)
                .order_by(orm.Chunk.chunk_index)
            ).all()
            return [
                Chunk(
                    document_id=row.document_id,
                    index=row.chunk_index,
                    text=row.content,
                    chunk_type=ChunkType(row.chunk_type),
                    metadata=dict(row.metadata_ or {}),
                    content_start=row.content_start,
                )
                for row in rows
            ]

    def get_original_text(self, document_id: int) -> str | None:
        with get_sync_session(self._session_factory) as session:
            return session.scalar(
                select(orm.Document.original_text).where(orm.Document.id == document_id)
            )


def _to_document(row: orm.Document) -> Document:
    return Document(
        id=row.id,
        filename=row.filename,
        file_type=row.file_type,
        text=row.text,
        original_text=row.original_text,
    )
