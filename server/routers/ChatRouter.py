from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from server.dependencies.auth import get_current_user_id, verify_api_key
from server.models.requests import ChatRequest
from server.models.responses import ChatHistoryResponse, ChatResponse, ChatSummaryResponse
from shared.models.chat import ChatResult

NO_RELEVANT_DOCUMENTS = "No relevant documents found."

router = APIRouter(prefix="/documents", tags=["chat"], dependencies=[Depends(verify_api_key)])


def _to_response(result: ChatResult) -> ChatResponse | JSONResponse:
    if result.retrieval_empty:
        return JSONResponse(status_code=404, content={"message": NO_RELEVANT_DOCUMENTS})
    return ChatResponse(response=result.response, chat_id=result.chat_id)


@router.post("/chat/ask", response_model=ChatResponse)
async def ask_general(
    request: Request,
    body: ChatRequest,
    user_id: str = Depends(get_current_user_id),
):
    """Chat across all documents of the user. Missing context is answered naturally."""
    query_service = request.app.state.query_service
    result = await query_service.do_general_chat(
        user_id=user_id,
        query=body.query,
        chat_id=body.chat_id,
        is_cancelled=request.is_disconnected,
    )
    return _to_response(result)


@router.get("/chathistories", response_model=list[ChatSummaryResponse])
async def list_general_histories(request: Request, user_id: str = Depends(get_current_user_id)):
    """List the user's general chats, most recently updated first."""
    summaries = await request.app.state.conversation_repository.list_by_user(user_id)
    return [ChatSummaryResponse(id=s.id, title=s.title, updated_at=s.updated_at) for s in summaries]


@router.get("/chathistory/{chat_id}", response_model=ChatHistoryResponse)
async def get_history(request: Request, chat_id: str, user_id: str = Depends(get_current_user_id)):
    """Return one chat of the user with all of its messages."""
    session = await request.app.state.conversation_repository.get_session(chat_id, user_id)
    return ChatHistoryResponse(
        id=session.id,
        title=session.title,
        document_id=session.document_id,
        messages=[m.model_dump() for m in session.messages],
        updated_at=session.updated_at,
    )


@router.post("/{document_id}/chat", response_model=ChatResponse)
async def chat_with_document(
    request: Request,
    document_id: str,
    body: ChatRequest,
    user_id: str = Depends(get_current_user_id),
):
    """Chat with a single document.

    Responds 404 with "No relevant documents found." when the document has no
    chunk matching the question; nothing is stored in that case.
    """
    query_service = request.app.state.query_service
    result = await query_service.do_document_chat(
        user_id=user_id,
        document_id=document_id,
        query=body.query,
        chat_id=body.chat_id,
        is_cancelled=request.is_disconnected,
    )
    return _to_response(result)


@router.get("/{document_id}/chatHistory", response_model=list[ChatSummaryResponse])
async def list_document_histories(request: Request, document_id: str, user_id: str = Depends(get_current_user_id)):
    """List the user's chats bound to one document."""
    await request.app.state.document_repository.get_for_owner(document_id, user_id)
    summaries = await request.app.state.conversation_repository.list_by_user(user_id, document_id=document_id)
    return [ChatSummaryResponse(id=s.id, title=s.title, updated_at=s.updated_at) for s in summaries]
