# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# Storage for documents and their chunks, used by SqlDocumentProvider.
#
# SCHEMA OVERVIEW:
#
# ┌────────────────┐       ┌──────────────────────────────────┐
# │  documents     │       │  chunks                          │
# ├────────────────┤       ├──────────────────────────────────┤
# │ id (PK)        │──1:N─▶│ id (PK)                          │
# │ filename       │       │ document_id (FK → documents.id)  │
# │ file_type      │       │ chunk_index (int)                │
# │ text           │       │ chunk_type (str)                 │
# │ original_text  │       │ content (text)                   │
# │ created_at     │       │ content_start (int)              │
# └────────────────┘       │ metadata_ (json)                 │
#                          └──────────────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. Tables and fields are never persisted. They are re-derived from
#    `original_text` (or the chunks) on every query, so there is nothing to
#    keep in sync when the extraction rules change.
#
# 2. Generic `JSON` for chunk metadata, so the schema works on SQLite as well
#    as PostgreSQL. `metadata_` avoids the clash with `Base.metadata`.
# =============================================================================

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class Document(Base):
    """An uploaded document as decoded by the ingestion layer."""

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)

    # Declared type, usually the extension ("csv", "md", "pdf")
    file_type: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    # Decoded text, and the lossless original when ingestion kept it
    text: Mapped[str] = mapped_column(Text, nullable=False)
    original_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    chunks: Mapped[list["Chunk"]] = relationship(
        "Chunk",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Chunk.chunk_index",
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, filename='{self.filename}')>"


class Chunk(Base):
    """One stored chunk. Rows are written once and never updated."""

    __tablename__ = "chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Offset in `content` where this chunk's own text begins (after the
    # repeated context)
    content_start: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    metadata_: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
        default=dict,
    )

    document: Mapped["Document"] = relationship("Document", back_populates="chunks")

    def __repr__(self) -> str:
        return (
            f"<Chunk(id={self.id}, document_id={self.document_id}, "
            f"index={self.chunk_index}, type={self.chunk_type})>"
        )
