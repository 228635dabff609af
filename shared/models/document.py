"""Pydantic models for documents and the chunks produced from their text."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class IngestionStatus(str, Enum):
    """Per-document ingestion state.

    pending → chunked → embedding → indexed, or failed from any step.
    """

    PENDING = "pending"
    CHUNKED = "chunked"
    EMBEDDING = "embedding"
    INDEXED = "indexed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IngestionStatus.INDEXED, IngestionStatus.FAILED)


class DocumentInfo(BaseModel):
    """Document metadata as far as the chat core needs it."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    title: str
    ingestion_status: IngestionStatus = IngestionStatus.PENDING
    chunk_count: int = 0
    ingestion_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Chunk(BaseModel):
    """A contiguous span of a document's text, embedded as one vector point.

    Attributes:
        document_id: Owning document.
        user_id:     Owning user, copied into the vector payload for isolation.
        index:       Zero-based position among the document's kept chunks.
        text:        The raw chunk text, equal to ``source[start:end]``.
        start:       Offset of the first character in the source text.
        end:         Offset one past the last character.
    """

    document_id: str
    user_id: str
    index: int
    text: str
    start: int
    end: int
