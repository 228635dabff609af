"""Models for points stored in the vector index."""

from pydantic import BaseModel


class VectorPoint(BaseModel):
    """Payload stored alongside each chunk vector.

    ``user_id`` and ``document_id`` are immutable and carry keyword payload
    indexes: every search filters on ``user_id`` for tenant isolation and
    document deletion removes points by ``document_id``.

    Attributes:
        document_id: Owning document.
        user_id:     MANDATORY, owning user; never empty.
        chunk_index: Zero-based position of the chunk within the document.
        text:        Raw chunk text returned as retrieval context.
    """

    document_id: str
    user_id: str
    chunk_index: int
    text: str


class IndexPoint(BaseModel):
    """A complete point as written by an upsert.

    ``id`` is an opaque UUID generated per ingestion run, never derived from
    document or user ids, so re-ingestions cannot collide with old points.
    """

    id: str
    vector: list[float]
    payload: VectorPoint
