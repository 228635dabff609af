"""Ingestion service.

Takes a document's extracted text, splits it into chunks, generates
embeddings via an EmbedClient, and upserts the resulting vectors into the
RAG backend with the owner/document payload used for tenant isolation.
Every state transition is persisted on the document record.
"""

import asyncio
import uuid

from services.doc_ingestion.TextChunker import DEFAULT_CHUNK_SIZE, TextChunker
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.models.EmbedTask import EmbedTask
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import IndexPoint, VectorPoint
from shared.exceptions import DocChatError, PersistenceError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import IngestionStatus
from shared.repositories.DocumentRepository import DocumentRepository

UPSERT_BATCH_SIZE = 100  # max points per upsert call
DOC_CONCURRENCY = 5      # max parallel document ingestions


def _make_point_id() -> str:
    """Fresh random point id.

    Ids never derive from document or user ids; stale points of a previous
    ingestion run are removed by filter instead of being overwritten.
    """
    return str(uuid.uuid4())


class IngestionService:
    """Runs the chunk → embed → index pipeline for single documents."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        document_repository: DocumentRepository,
        chunker: TextChunker | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self._rag_client = rag_client
        self._documents = document_repository
        self._chunker = chunker or TextChunker(
            logger=self.logging,
            chunk_size=helper_config.get_int_val("CHUNK_SIZE", default=DEFAULT_CHUNK_SIZE, minimum=1),
        )
        self._upsert_batch_size = helper_config.get_int_val("RAG_UPSERT_BATCH_SIZE", default=UPSERT_BATCH_SIZE, minimum=1)
        self._sem = asyncio.Semaphore(helper_config.get_int_val("INGEST_CONCURRENCY", default=DOC_CONCURRENCY, minimum=1))
        # strong references, the event loop only keeps weak ones to running tasks
        self._tasks: set[asyncio.Task] = set()
        self._tasks_by_document: dict[str, asyncio.Task] = {}

    ##########################################
    ############### SCHEDULING ###############
    ##########################################

    def do_schedule(self, document_id: str, user_id: str, text: str) -> asyncio.Task:
        """Start ingestion in the background and return immediately.

        Returns:
            asyncio.Task: The running job; it resolves to the final IngestionStatus.
        """
        task = asyncio.create_task(self.do_ingest(document_id, user_id, text), name=f"ingest-{document_id}")
        self._tasks.add(task)
        self._tasks_by_document[document_id] = task
        task.add_done_callback(lambda done: self._forget_task(document_id, done))
        self.logging.debug("Scheduled ingestion for document %s (user=%s).", document_id, user_id)
        return task

    def _forget_task(self, document_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        # a newer job for the same document may already be registered
        if self._tasks_by_document.get(document_id) is task:
            del self._tasks_by_document[document_id]

    async def do_cancel(self, document_id: str) -> bool:
        """Cancel the running ingestion of a document and wait until it has stopped.

        Returns:
            bool: True if a job was running.
        """
        task = self._tasks_by_document.get(document_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.wait({task})
        self.logging.info("Cancelled running ingestion of document %s.", document_id)
        return True

    def get_pending_count(self) -> int:
        return len(self._tasks)

    async def do_drain(self) -> None:
        """Wait for every scheduled ingestion to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    ##########################################
    ############ DOCUMENT INGEST #############
    ##########################################

    async def do_ingest(self, document_id: str, user_id: str, text: str) -> IngestionStatus:
        """Ingest one document, bounded by the ingestion semaphore.

        Never raises: any failure is logged with the document and user id and
        recorded as ``failed`` together with the error message.

        Returns:
            IngestionStatus: INDEXED on success, FAILED otherwise.
        """
        async with self._sem:
            try:
                return await self._ingest(document_id, user_id, text)
            except asyncio.CancelledError:
                await self._mark_failed(document_id, user_id, "ingestion cancelled")
                raise
            except DocChatError as exc:
                self.logging.error("Ingestion failed for document %s (user=%s): %s", document_id, user_id, exc.message)
                await self._mark_failed(document_id, user_id, exc.message)
            except Exception as exc:
                self.logging.error("Unexpected ingestion error for document %s (user=%s): %s", document_id, user_id, exc, exc_info=True)
                await self._mark_failed(document_id, user_id, str(exc) or type(exc).__name__)
            return IngestionStatus.FAILED

    async def _ingest(self, document_id: str, user_id: str, text: str) -> IngestionStatus:
        if not user_id:
            raise ValueError(f"Document {document_id} has no owner; refusing to index it.")

        chunks = list(self._chunker.split(text, document_id=document_id, user_id=user_id))
        if not chunks:
            self.logging.warning("Document %s (user=%s) produced no chunks.", document_id, user_id)
            await self._documents.set_ingestion_status(document_id, IngestionStatus.FAILED, chunk_count=0, error="no text")
            return IngestionStatus.FAILED
        await self._documents.set_ingestion_status(document_id, IngestionStatus.CHUNKED, chunk_count=len(chunks))

        await self._documents.set_ingestion_status(document_id, IngestionStatus.EMBEDDING)
        vectors = await self._embed_client.do_embed_batch([chunk.text for chunk in chunks], task=EmbedTask.DOCUMENT)
        if not await self._document_exists(document_id, user_id):
            return IngestionStatus.FAILED

        # stale chunks go first; if a later upsert batch fails the document
        # stays "failed" with partial chunks until it is re-ingested
        await self._rag_client.do_delete_points_by_filter({"document_id": document_id})

        points = [
            IndexPoint(
                id=_make_point_id(),
                vector=vector,
                payload=VectorPoint(document_id=document_id, user_id=user_id, chunk_index=chunk.index, text=chunk.text),
            )
            for chunk, vector in zip(chunks, vectors, strict=True)
        ]

        # upsert in batches to avoid oversized requests
        for batch_start in range(0, len(points), self._upsert_batch_size):
            await self._rag_client.do_upsert_points(points[batch_start: batch_start + self._upsert_batch_size])

        if not await self._document_exists(document_id, user_id):
            # deleted while upserting, take the fresh chunks back out
            await self._rag_client.do_delete_points_by_filter({"document_id": document_id})
            return IngestionStatus.FAILED

        await self._documents.set_ingestion_status(document_id, IngestionStatus.INDEXED, chunk_count=len(points))
        self.logging.info("Indexed document %s (user=%s): %d chunks upserted.", document_id, user_id, len(points))
        return IngestionStatus.INDEXED

    async def _document_exists(self, document_id: str, user_id: str) -> bool:
        if await self._documents.get(document_id) is not None:
            return True
        self.logging.warning("Document %s (user=%s) was deleted during ingestion; discarding its chunks.", document_id, user_id)
        return False

    async def _mark_failed(self, document_id: str, user_id: str, error: str) -> None:
        try:
            await self._documents.set_ingestion_status(document_id, IngestionStatus.FAILED, error=error)
        except PersistenceError as exc:
            self.logging.error("Could not record failure of document %s (user=%s): %s", document_id, user_id, exc.message)

    ##########################################
    ################ REMOVAL #################
    ##########################################

    async def do_remove_document_points(self, document_id: str, user_id: str | None = None) -> None:
        """Delete every indexed chunk of a document.

        Raises:
            IndexWriteError: If the vector index rejects the delete.
        """
        filters = {"document_id": document_id}
        if user_id:
            filters["user_id"] = user_id
        await self._rag_client.do_delete_points_by_filter(filters)
        self.logging.info("Removed indexed chunks of document %s.", document_id)
