from pydantic import BaseModel, ConfigDict, Field


class RegisterDocumentRequest(BaseModel):
    title: str
    text: str
    document_id: str | None = None


class ReindexDocumentRequest(BaseModel):
    text: str


class ChatRequest(BaseModel):
    # clients send the session id as "chatId"
    model_config = ConfigDict(populate_by_name=True)

    query: str = ""
    chat_id: str | None = Field(default=None, alias="chatId")


class SemanticSearchRequest(BaseModel):
    query: str = ""
