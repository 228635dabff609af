"""Error taxonomy of the document chat core.

Lower layers translate backend-specific failures (httpx, SQLAlchemy, malformed
payloads) into these types, so orchestrators and the HTTP layer only ever see
the classes below. Each error carries the HTTP status it is surfaced with.
"""

from typing import Any


class DocChatError(Exception):
    """Base class for every error raised by the document chat core."""

    status_code: int = 500
    code: str = "DOC_CHAT_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert the error into the JSON body returned to API callers."""
        return {
            "message": self.message,
            "error": {
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            },
        }


class EmbeddingError(DocChatError):
    """The embedding backend returned no vector, a malformed response or failed outright."""

    status_code = 400
    code = "EMBEDDING_ERROR"


class GenerationError(DocChatError):
    """The generative language model failed or returned an empty answer."""

    status_code = 500
    code = "GENERATION_ERROR"


class IndexWriteError(DocChatError):
    """Upsert, delete or collection setup in the vector index failed."""

    status_code = 500
    code = "INDEX_WRITE_ERROR"


class IndexSearchError(DocChatError):
    """A similarity search against the vector index failed."""

    status_code = 500
    code = "INDEX_SEARCH_ERROR"


class SessionNotFound(DocChatError):
    """A chat id was supplied that does not exist for this user and scope."""

    status_code = 404
    code = "SESSION_NOT_FOUND"


class DocumentNotFound(DocChatError):
    """The document does not exist or is not owned by the requesting user."""

    status_code = 404
    code = "DOCUMENT_NOT_FOUND"


class QueryCancelled(DocChatError):
    """The caller went away before the turn was persisted."""

    status_code = 499
    code = "QUERY_CANCELLED"


class PersistenceError(DocChatError):
    """Reading or writing the chat database failed; the transaction was rolled back."""

    status_code = 500
    code = "PERSISTENCE_ERROR"
