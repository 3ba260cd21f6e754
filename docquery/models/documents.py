# =============================================================================
# Document & Chunk — Core Value Types
# =============================================================================
#
# A Document is the decoded text of an uploaded file plus (optionally) the
# original text stored losslessly at upload time. A Chunk is one typed,
# metadata-tagged segment produced by the chunker.
#
# DESIGN DECISION: Plain dataclasses, not Pydantic models.
# These objects never cross the HTTP boundary directly; they are created by
# the chunker and the document providers and read by the extractors. Chunk
# is frozen so a chunk's type and text cannot change after creation.
# =============================================================================

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class ChunkType(str, enum.Enum):
    """Type tag assigned to a chunk at creation time."""

    CSV = "csv"
    CSV_SUMMARY = "csv_summary"
    CODE = "code"
    MARKDOWN = "markdown"
    TEXT = "text"


@dataclass
class Document:
    """A decoded document as handed over by the ingestion layer."""

    id: int
    filename: str
    file_type: str  # declared type, usually the file extension ("csv", "md")
    text: str
    original_text: str | None = None


@dataclass(frozen=True)
class Chunk:
    """
    An immutable segment of a document.

    `content_start` is the offset in `text` where content newly contributed
    by this chunk begins. Everything before it is context repeated from
    elsewhere (file preamble, header line, overlap with the previous chunk).
    """

    document_id: int
    index: int
    text: str
    chunk_type: ChunkType
    metadata: dict[str, Any] = field(default_factory=dict)
    content_start: int = 0

    @property
    def is_summary(self) -> bool:
        return self.chunk_type is ChunkType.CSV_SUMMARY

    @property
    def content(self) -> str:
        """The part of the text this chunk contributes to the source."""
        return self.text[self.content_start:]
