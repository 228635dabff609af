from abc import abstractmethod
from numbers import Number

import httpx
from typing import Tuple
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.models.EmbedTask import EmbedTask
from shared.exceptions import EmbeddingError

from shared.helper.HelperConfig import HelperConfig

_VECTOR_SIZE_PROBE = "vector size probe"


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_distance = helper_config.get_string_val(f"{self.get_client_type().upper()}_DISTANCE", default="Cosine")
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL")
        self.embed_batch_size = helper_config.get_int_val(f"{self.get_client_type().upper()}_BATCH_SIZE", default=100, minimum=1)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "embed"

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str], task: EmbedTask) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.
            task (EmbedTask): Whether the texts are search queries or document chunks.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Response format differs by backend:
        - Ollama /api/embed: {"embeddings": [[...], [...]]}
        - Gemini :batchEmbedContents: {"embeddings": [{"values": [...]}, ...]}

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid.
        """
        pass

    def _validate_vectors(self, vectors: list, expected: int) -> list[list[float]]:
        """Check count parity and shape of a batch of vectors.

        Callers zip chunk texts back onto these vectors by position, so a
        missing, empty or ragged vector invalidates the whole batch.

        Raises:
            EmbeddingError: If the batch is malformed.
        """
        if not isinstance(vectors, list) or len(vectors) != expected:
            got = len(vectors) if isinstance(vectors, list) else type(vectors).__name__
            raise EmbeddingError(
                f"Embedding backend returned {got} vectors for {expected} inputs.",
                details={"engine": self.get_engine_name(), "model": self.embed_model},
            )
        dimension = None
        for position, vector in enumerate(vectors):
            if not isinstance(vector, list) or not vector or not all(isinstance(v, Number) for v in vector):
                raise EmbeddingError(
                    f"Embedding backend returned an empty or malformed vector at position {position}.",
                    details={"engine": self.get_engine_name(), "model": self.embed_model},
                )
            if dimension is None:
                dimension = len(vector)
            elif len(vector) != dimension:
                raise EmbeddingError(
                    f"Embedding backend returned vectors of mixed dimension ({dimension} and {len(vector)}).",
                    details={"engine": self.get_engine_name(), "model": self.embed_model},
                )
        return [[float(v) for v in vector] for vector in vectors]

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        """
        Determine the output vector dimension and distance metric of the configured model.

        The default implementation embeds a short probe text; engines with a
        model-info endpoint override this.

        Returns:
            Tuple[int, str]: The vector dimension and the distance metric.

        Raises:
            EmbeddingError: If the probe cannot be embedded.
        """
        vector = await self.do_embed_single(_VECTOR_SIZE_PROBE, task=EmbedTask.DOCUMENT)
        return len(vector), self.embed_distance

    async def _do_embed_request(self, texts: list[str], task: EmbedTask) -> list[list[float]]:
        body = self.get_embed_payload(texts, task)
        try:
            response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        except httpx.HTTPError as exc:
            self.logging.error("Embedding request to %s failed: %s", self.get_engine_name(), exc)
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        if response.status_code != 200:
            self.logging.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingError(
                "Embedding request failed with status %d." % response.status_code,
                details={"engine": self.get_engine_name(), "status": response.status_code},
            )

        try:
            vectors = self.extract_embeddings_from_response(response.json())
        except ValueError as exc:
            # also covers json.JSONDecodeError
            raise EmbeddingError(f"Malformed embedding response: {exc}") from exc
        return self._validate_vectors(vectors, expected=len(texts))

    async def do_embed(self, texts: list[str] | str, task: EmbedTask) -> list[list[float]]:
        """Embed one or more texts, splitting them into backend-sized batches.

        There is no partial success: if any batch fails the whole call fails
        and the caller has to retry the full set.

        Args:
            texts (list[str] | str): One or more texts to embed.
            task (EmbedTask): Query or document side of retrieval.

        Returns:
            list[list[float]]: Exactly one vector per input, in input order.

        Raises:
            EmbeddingError: If any batch fails or returns malformed vectors.
        """
        texts = [texts] if isinstance(texts, str) else list(texts)
        if not texts:
            return []

        vectors: list[list[float]] = []
        for batch_start in range(0, len(texts), self.embed_batch_size):
            batch = texts[batch_start: batch_start + self.embed_batch_size]
            vectors.extend(await self._do_embed_request(batch, task))
        self.logging.debug("Embedded %d text(s) as %s with %s.", len(vectors), task.value, self.get_engine_name())
        return vectors

    async def do_embed_batch(self, texts: list[str], task: EmbedTask = EmbedTask.DOCUMENT) -> list[list[float]]:
        """Embed document chunks; ``len(result) == len(texts)``."""
        return await self.do_embed(texts, task=task)

    async def do_embed_single(self, text: str, task: EmbedTask = EmbedTask.QUERY) -> list[float]:
        """Embed a single text (by default a search query) and return its vector."""
        vectors = await self.do_embed([text], task=task)
        return vectors[0]
