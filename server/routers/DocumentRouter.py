from fastapi import APIRouter, Depends, Request, status

from server.dependencies.auth import get_current_user_id, verify_api_key
from server.models.requests import RegisterDocumentRequest, ReindexDocumentRequest, SemanticSearchRequest
from server.models.responses import DocumentStatusResponse, MessageResponse
from shared.models.document import DocumentInfo

router = APIRouter(prefix="/documents", tags=["documents"], dependencies=[Depends(verify_api_key)])


def _to_status(document: DocumentInfo) -> DocumentStatusResponse:
    return DocumentStatusResponse(
        document_id=document.id,
        title=document.title,
        status=document.ingestion_status.value,
        chunk_count=document.chunk_count,
        error=document.ingestion_error,
    )


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def register_document(
    request: Request,
    body: RegisterDocumentRequest,
    user_id: str = Depends(get_current_user_id),
) -> DocumentStatusResponse:
    """Register a document's extracted text; ingestion continues in the background.

    Args:
        request (Request): FastAPI request (provides app.state.document_service).
        body (RegisterDocumentRequest): Title, text and an optional document id.
        user_id (str): Authenticated owner.

    Returns:
        DocumentStatusResponse: The new record in state "pending".
    """
    document_service = request.app.state.document_service
    document = await document_service.do_register(
        user_id=user_id, title=body.title, text=body.text, document_id=body.document_id
    )
    return _to_status(document)


@router.get("/{document_id}/status")
async def get_document_status(
    request: Request,
    document_id: str,
    user_id: str = Depends(get_current_user_id),
) -> DocumentStatusResponse:
    document = await request.app.state.document_service.get_status(user_id=user_id, document_id=document_id)
    return _to_status(document)


@router.post("/{document_id}/reindex", status_code=status.HTTP_202_ACCEPTED)
async def reindex_document(
    request: Request,
    document_id: str,
    body: ReindexDocumentRequest,
    user_id: str = Depends(get_current_user_id),
) -> DocumentStatusResponse:
    """Replace the indexed chunks of a document with ones built from new text."""
    document = await request.app.state.document_service.do_reingest(
        user_id=user_id, document_id=document_id, text=body.text
    )
    return _to_status(document)


@router.delete("/{document_id}")
async def delete_document(
    request: Request,
    document_id: str,
    user_id: str = Depends(get_current_user_id),
) -> MessageResponse:
    """Delete a document, its indexed chunks and every chat bound to it."""
    await request.app.state.document_service.do_delete(user_id=user_id, document_id=document_id)
    return MessageResponse(message="Document deleted successfully.")


@router.post("/semantic-search")
async def semantic_search(
    request: Request,
    body: SemanticSearchRequest,
    user_id: str = Depends(get_current_user_id),
) -> list[DocumentStatusResponse]:
    """List the user's documents most similar to a free-text query, best match first."""
    documents = await request.app.state.query_service.do_semantic_search(user_id=user_id, query=body.query)
    return [_to_status(document) for document in documents]
