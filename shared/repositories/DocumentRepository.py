from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from shared.database.DatabaseManager import DatabaseManager
from shared.database.models import DocumentRecord, utcnow
from shared.exceptions import DocumentNotFound, PersistenceError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DocumentInfo, IngestionStatus


class DocumentRepository:
    """Document metadata and ingestion status, always looked up on behalf of an owner."""

    def __init__(self, helper_config: HelperConfig, database: DatabaseManager):
        self.logging = helper_config.get_logger()
        self.session_factory = database.session_factory

    async def create(self, document_id: str, owner_id: str, title: str) -> DocumentInfo:
        """Insert a new document in state ``pending``."""
        now = utcnow()
        record = DocumentRecord(
            id=document_id,
            owner_id=owner_id,
            title=title,
            ingestion_status=IngestionStatus.PENDING.value,
            chunk_count=0,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    db.add(record)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Creating document {document_id} failed: {exc}") from exc
        return DocumentInfo.model_validate(record)

    async def get(self, document_id: str) -> DocumentInfo | None:
        try:
            async with self.session_factory() as db:
                record = await db.get(DocumentRecord, document_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Loading document {document_id} failed: {exc}") from exc
        return DocumentInfo.model_validate(record) if record else None

    async def get_for_owner(self, document_id: str, owner_id: str) -> DocumentInfo:
        """
        Return the document if it exists and belongs to ``owner_id``.

        Raises:
            DocumentNotFound: Otherwise. Foreign documents are indistinguishable from missing ones.
        """
        document = await self.get(document_id)
        if document is None or document.owner_id != owner_id:
            raise DocumentNotFound(f"Document {document_id} not found.", details={"document_id": document_id})
        return document

    async def find_by_owner(self, owner_id: str, document_ids: list[str] | None = None) -> list[DocumentInfo]:
        """Documents of ``owner_id``, newest first, optionally restricted to ``document_ids``."""
        stmt = select(DocumentRecord).where(DocumentRecord.owner_id == owner_id)
        if document_ids is not None:
            if not document_ids:
                return []
            stmt = stmt.where(DocumentRecord.id.in_(document_ids))
        stmt = stmt.order_by(DocumentRecord.created_at.desc())
        try:
            async with self.session_factory() as db:
                records = (await db.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Listing documents of {owner_id} failed: {exc}") from exc
        return [DocumentInfo.model_validate(record) for record in records]

    async def set_ingestion_status(
        self,
        document_id: str,
        status: IngestionStatus,
        chunk_count: int | None = None,
        error: str | None = None,
    ) -> None:
        """
        Record an ingestion state transition.

        The error message is cleared on every transition except into ``failed``.
        Unknown documents are ignored (the document may have been deleted
        while its ingestion was still running).
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    record = await db.get(DocumentRecord, document_id)
                    if record is None:
                        self.logging.warning("Status update %s for unknown document %s ignored.", status.value, document_id)
                        return
                    record.ingestion_status = status.value
                    record.ingestion_error = error if status == IngestionStatus.FAILED else None
                    if chunk_count is not None:
                        record.chunk_count = chunk_count
                    record.updated_at = utcnow()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Updating status of document {document_id} failed: {exc}") from exc

    async def delete(self, document_id: str) -> bool:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(delete(DocumentRecord).where(DocumentRecord.id == document_id))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Deleting document {document_id} failed: {exc}") from exc
        return bool(result.rowcount)
