import uuid

from services.doc_ingestion.IngestionService import IngestionService
from shared.exceptions import DocChatError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentInfo, IngestionStatus
from shared.repositories.ConversationRepository import ConversationRepository
from shared.repositories.DocumentRepository import DocumentRepository


class DocumentService:
    """Document registration, re-indexing and cascade deletion."""

    def __init__(
        self,
        helper_config: HelperConfig,
        documents: DocumentRepository,
        conversations: ConversationRepository,
        ingestion_service: IngestionService,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._documents = documents
        self._conversations = conversations
        self._ingestion = ingestion_service

    async def do_register(self, user_id: str, title: str, text: str, document_id: str | None = None) -> DocumentInfo:
        """Create the document record in state ``pending`` and start ingestion in the background.

        The record is returned before any chunk is indexed; chats against it
        may see no context until ingestion completes.
        """
        if not title or not title.strip():
            raise ValueError("Document title must not be empty.")
        document_id = document_id or str(uuid.uuid4())
        existing = await self._documents.get(document_id)
        if existing is not None:
            raise ValueError(f"Document {document_id} already exists.")

        document = await self._documents.create(document_id=document_id, owner_id=user_id, title=title.strip())
        self._ingestion.do_schedule(document_id=document.id, user_id=user_id, text=text)
        self.logging.info("Registered document %s ('%s') for user %s.", document.id, document.title, user_id)
        return document

    async def do_reingest(self, user_id: str, document_id: str, text: str) -> DocumentInfo:
        """Re-run ingestion for an existing document, replacing its indexed chunks."""
        document = await self._documents.get_for_owner(document_id, user_id)
        # a still running job would race the new one on the same points
        await self._ingestion.do_cancel(document.id)
        await self._documents.set_ingestion_status(document.id, IngestionStatus.PENDING, chunk_count=0)
        self._ingestion.do_schedule(document_id=document.id, user_id=user_id, text=text)
        return await self._documents.get_for_owner(document_id, user_id)

    async def get_status(self, user_id: str, document_id: str) -> DocumentInfo:
        return await self._documents.get_for_owner(document_id, user_id)

    async def do_delete(self, user_id: str, document_id: str) -> None:
        """
        Delete a document together with everything derived from it.

        A running ingestion of the document is cancelled first. Then: indexed
        chunks, bound chat sessions, the record itself, so a failure part-way
        leaves the record in place and the delete can be repeated.

        Raises:
            DocumentNotFound: If the document does not belong to the user.
            IndexWriteError: If the chunks cannot be removed from the index.
        """
        document = await self._documents.get_for_owner(document_id, user_id)
        try:
            await self._ingestion.do_cancel(document.id)
            await self._ingestion.do_remove_document_points(document.id)
            removed_sessions = await self._conversations.delete_by_document(document.id)
            await self._documents.delete(document.id)
        except DocChatError as exc:
            self.logging.error("Deleting document %s (user=%s) failed: %s", document.id, user_id, exc.message)
            raise
        self.logging.info(
            "Deleted document %s (user=%s) with %d chat session(s).", document.id, user_id, removed_sessions
        )
