from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from shared.models.chat import ChatRole


class DocumentStatusResponse(BaseModel):
    document_id: str
    title: str
    status: str
    chunk_count: int
    error: str | None = None


class MessageResponse(BaseModel):
    message: str


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    chat_id: str = Field(alias="chatId")


class ChatSummaryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class ChatMessageResponse(BaseModel):
    role: ChatRole
    text: str
    created_at: datetime | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class ChatHistoryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    document_id: str | None = Field(default=None, alias="documentId")
    messages: list[ChatMessageResponse]
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class HealthResponse(BaseModel):
    status: str
    backends: dict[str, bool]
