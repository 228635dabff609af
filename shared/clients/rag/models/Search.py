from pydantic import BaseModel

from shared.clients.rag.models.VectorPoint import VectorPoint


class SearchHit(BaseModel):
    """One ranked similarity-search result.

    Attributes:
        id:      Point id.
        score:   Similarity score; higher is more similar.
        payload: The stored chunk payload.
    """

    id: str
    score: float
    payload: VectorPoint
