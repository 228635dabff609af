from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig

OVERFETCH_FACTOR = 5  # document scope searches k * factor hits, then filters locally


class Retriever:
    """Turns a query vector into the top-k context chunk texts of one user.

    Two scopes:
      * document scope: chunks of a single document of the user
      * general scope: chunks across all of the user's documents
    """

    def __init__(self, helper_config: HelperConfig, rag_client: RAGClientInterface):
        self.logging = helper_config.get_logger()
        self._rag_client = rag_client
        self._overfetch_factor = helper_config.get_int_val("RETRIEVER_OVERFETCH_FACTOR", default=OVERFETCH_FACTOR, minimum=1)

    async def retrieve(self, query_vector: list[float], user_id: str, k: int, document_id: str | None = None) -> list[str]:
        """Return at most ``k`` chunk texts ranked by similarity.

        Document scope filters on user and document, over-fetches by the
        configured factor and re-checks both fields on every hit locally.
        An empty result stays empty, there is no fallback to general scope.

        Raises:
            ValueError: If ``user_id`` is empty.
            IndexSearchError: If the vector index search fails.
        """
        if not user_id:
            raise ValueError("Retrieval requires a user id.")
        if k <= 0:
            return []

        filters = {"user_id": user_id}
        limit = k
        if document_id:
            filters["document_id"] = document_id
            limit = k * self._overfetch_factor
        hits = await self._rag_client.do_search(vector=query_vector, limit=limit, filters=filters)

        texts: list[str] = []
        for hit in hits:
            if hit.payload.user_id != user_id:
                self.logging.error(
                    "Dropping point %s of user %s returned for user %s.", hit.id, hit.payload.user_id, user_id
                )
                continue
            if document_id and hit.payload.document_id != document_id:
                continue
            texts.append(hit.payload.text)
            if len(texts) == k:
                break

        self.logging.debug(
            "Retrieved %d/%d chunk(s) for user=%s document=%s (searched %d).",
            len(texts), k, user_id, document_id or "*", len(hits),
        )
        return texts

    async def find_document_ids(self, query_vector: list[float], user_id: str, k: int) -> list[str]:
        """Ids of the user's documents behind the ``k`` most similar chunks.

        Ids are unique and keep the rank of their best chunk, so fewer than
        ``k`` ids come back when several hits share a document.

        Raises:
            ValueError: If ``user_id`` is empty.
            IndexSearchError: If the vector index search fails.
        """
        if not user_id:
            raise ValueError("Retrieval requires a user id.")
        if k <= 0:
            return []

        hits = await self._rag_client.do_search(vector=query_vector, limit=k, filters={"user_id": user_id})
        document_ids: list[str] = []
        for hit in hits:
            if hit.payload.user_id != user_id:
                self.logging.error(
                    "Dropping point %s of user %s returned for user %s.", hit.id, hit.payload.user_id, user_id
                )
                continue
            if hit.payload.document_id not in document_ids:
                document_ids.append(hit.payload.document_id)
        return document_ids
