"""Pydantic models for chat sessions, their messages and chat turn results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMode(str, Enum):
    """Scope of a chat turn.

    DOCUMENT chats are bound to one document and answer strictly from it,
    GENERAL chats search all of the user's documents and act as an assistant.
    """

    DOCUMENT = "document"
    GENERAL = "general"


class ChatMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: ChatRole
    text: str
    created_at: datetime | None = None


class ConversationSession(BaseModel):
    """One chat thread with its ordered messages.

    ``persisted`` stays False for a freshly created session until its first
    turn has been stored; nothing is written for a session whose first turn
    never completes.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    document_id: str | None = None
    title: str = ""
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    persisted: bool = False

    @property
    def mode(self) -> ChatMode:
        return ChatMode.DOCUMENT if self.document_id else ChatMode.GENERAL


class ChatSessionSummary(BaseModel):
    """Listing projection of a session (no messages)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    updated_at: datetime | None = None


class ChatResult(BaseModel):
    """Outcome of one chat turn.

    ``retrieval_empty`` marks the document-mode "no relevant context" outcome;
    it is a regular result, not an error, and carries no response.
    """

    response: str | None = None
    chat_id: str | None = None
    retrieval_empty: bool = False
    context_chunks: int = 0
