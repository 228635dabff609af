from collections.abc import Awaitable, Callable

from server.core.AnswerGenerator import AnswerGenerator
from server.core.Retriever import Retriever
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.models.EmbedTask import EmbedTask
from shared.exceptions import DocChatError, EmbeddingError, QueryCancelled
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatMode, ChatResult
from shared.models.document import DocumentInfo
from shared.repositories.ConversationRepository import ConversationRepository
from shared.repositories.DocumentRepository import DocumentRepository

TOP_K_DOCUMENT = 3
TOP_K_GENERAL = 5
TITLE_MAX_CHARS = 40
TOP_K_SEARCH = 5

CancelCheck = Callable[[], Awaitable[bool]]


class QueryService:
    """Handles chat turns: embed -> retrieve -> generate -> persist."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        retriever: Retriever,
        answer_generator: AnswerGenerator,
        conversations: ConversationRepository,
        documents: DocumentRepository,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed_client = embed_client
        self._retriever = retriever
        self._answer_generator = answer_generator
        self._conversations = conversations
        self._documents = documents
        self._top_k_document = helper_config.get_int_val("CHAT_TOP_K_DOCUMENT", default=TOP_K_DOCUMENT, minimum=1)
        self._top_k_general = helper_config.get_int_val("CHAT_TOP_K_GENERAL", default=TOP_K_GENERAL, minimum=1)
        self._title_max_chars = helper_config.get_int_val("CHAT_TITLE_MAX_CHARS", default=TITLE_MAX_CHARS, minimum=1)
        self._top_k_search = helper_config.get_int_val("SEMANTIC_SEARCH_TOP_K", default=TOP_K_SEARCH, minimum=1)

    ##########################################
    ################ HELPER ##################
    ##########################################

    def _general_title(self, query: str) -> str:
        query = query.strip()
        if len(query) <= self._title_max_chars:
            return query
        return query[: self._title_max_chars] + "..."

    ##########################################
    ############### CORE #####################
    ##########################################

    async def do_document_chat(
        self,
        user_id: str,
        document_id: str,
        query: str,
        chat_id: str | None = None,
        is_cancelled: CancelCheck | None = None,
    ) -> ChatResult:
        """Answer a question from a single document of the user.

        Returns:
            ChatResult: ``retrieval_empty`` is set, and nothing is stored, when
            the document has no chunk relevant to the question.

        Raises:
            DocumentNotFound: If the document does not belong to the user.
            SessionNotFound: If ``chat_id`` is unknown or bound elsewhere.
            EmbeddingError, IndexSearchError, GenerationError: From the pipeline.
        """
        document = await self._documents.get_for_owner(document_id, user_id)
        return await self._do_chat(
            user_id=user_id,
            query=query,
            chat_id=chat_id,
            document_id=document.id,
            seed_title=f"Chat with {document.title}",
            is_cancelled=is_cancelled,
        )

    async def do_general_chat(
        self,
        user_id: str,
        query: str,
        chat_id: str | None = None,
        is_cancelled: CancelCheck | None = None,
    ) -> ChatResult:
        """Answer a question across all of the user's documents.

        Missing context is not an error here: the model answers without it.
        """
        return await self._do_chat(
            user_id=user_id,
            query=query,
            chat_id=chat_id,
            document_id=None,
            seed_title=self._general_title(query or ""),
            is_cancelled=is_cancelled,
        )

    async def _do_chat(
        self,
        user_id: str,
        query: str,
        chat_id: str | None,
        document_id: str | None,
        seed_title: str,
        is_cancelled: CancelCheck | None,
    ) -> ChatResult:
        if not query or not query.strip():
            raise ValueError("Query must not be empty.")
        query = query.strip()
        mode = ChatMode.DOCUMENT if document_id else ChatMode.GENERAL

        session = await self._conversations.load_or_create(
            chat_id=chat_id, user_id=user_id, document_id=document_id, seed_title=seed_title
        )
        self.logging.info(
            "Chat turn: mode=%s user=%s document=%s chat=%s (new=%s)",
            mode.value, user_id, document_id or "*", session.id, not session.persisted,
        )

        try:
            query_vector = await self._embed_client.do_embed_single(query, task=EmbedTask.QUERY)
            if not query_vector:
                raise EmbeddingError("Embedding backend returned an empty query vector.")

            k = self._top_k_document if mode == ChatMode.DOCUMENT else self._top_k_general
            context_chunks = await self._retriever.retrieve(query_vector, user_id=user_id, k=k, document_id=document_id)

            if not context_chunks and mode == ChatMode.DOCUMENT:
                self.logging.info("No relevant chunks in document %s for user %s.", document_id, user_id)
                return ChatResult(chat_id=session.id if session.persisted else None, retrieval_empty=True)

            answer = await self._answer_generator.generate(
                question=query,
                context_chunks=context_chunks,
                history=session.messages,
                mode=mode,
            )
        except DocChatError as exc:
            self.logging.error(
                "Chat turn failed (mode=%s user=%s document=%s chat=%s): %s",
                mode.value, user_id, document_id or "*", session.id, exc.message,
            )
            raise

        # an abandoned request must not change the history
        if is_cancelled is not None and await is_cancelled():
            self.logging.warning("Caller of chat %s (user=%s) disconnected, turn discarded.", session.id, user_id)
            raise QueryCancelled("Client disconnected before the answer was stored.", details={"chat_id": session.id})

        session = await self._conversations.append_turn(session, user_text=query, assistant_text=answer)
        return ChatResult(response=answer, chat_id=session.id, context_chunks=len(context_chunks))

    ##########################################
    ############ SEMANTIC SEARCH #############
    ##########################################

    async def do_semantic_search(self, user_id: str, query: str, k: int | None = None) -> list[DocumentInfo]:
        """Find the user's documents whose chunks are most similar to ``query``.

        Documents come back in the rank of their best chunk. Hits pointing at
        documents that no longer exist are skipped.

        Raises:
            ValueError: If the query is blank.
            EmbeddingError, IndexSearchError: From the pipeline.
        """
        if not query or not query.strip():
            raise ValueError("Query must not be empty.")
        k = k or self._top_k_search

        try:
            query_vector = await self._embed_client.do_embed_single(query.strip(), task=EmbedTask.QUERY)
            if not query_vector:
                raise EmbeddingError("Embedding backend returned an empty query vector.")
            document_ids = await self._retriever.find_document_ids(query_vector, user_id=user_id, k=k)
        except DocChatError as exc:
            self.logging.error("Semantic search failed (user=%s): %s", user_id, exc.message)
            raise

        found = {document.id: document for document in await self._documents.find_by_owner(user_id, document_ids=document_ids)}
        documents = [found[document_id] for document_id in document_ids if document_id in found]
        self.logging.info("Semantic search for user %s matched %d document(s).", user_id, len(documents))
        return documents
