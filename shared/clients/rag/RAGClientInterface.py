from abc import abstractmethod
import json

import httpx
from pydantic import ValidationError

from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.Search import SearchHit
from shared.clients.rag.models.VectorPoint import IndexPoint
from shared.exceptions import IndexSearchError, IndexWriteError
from shared.helper.HelperConfig import HelperConfig

# payload fields that must carry a keyword index
INDEXED_PAYLOAD_FIELDS = ("user_id", "document_id")
# every search has to be scoped to one user
ISOLATION_FIELD = "user_id"


class RAGClientInterface(ClientInterface):
    """Multi-tenant vector index.

    Filters are plain ``{payload_field: value}`` dicts combined as a
    conjunction of exact matches; each engine translates them into its own
    filter syntax.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ############### CHECKER ##################
    ##########################################

    @staticmethod
    def _check_filters(filters: dict[str, str], require_isolation: bool) -> None:
        """Reject empty filters and searches that are not scoped to a user.

        Raises:
            ValueError: If the filter is empty, has empty values or lacks user_id.
        """
        if not filters:
            raise ValueError("Refusing to run an unfiltered vector index operation.")
        for key, value in filters.items():
            if value is None or str(value) == "":
                raise ValueError(f"Filter value for '{key}' must not be empty.")
        if require_isolation and ISOLATION_FIELD not in filters:
            raise ValueError(f"Every search must be filtered by '{ISOLATION_FIELD}'.")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "rag"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_points(self) -> str:
        """Returns the endpoint path for point upserts (e.g. "/collections/c/points")."""
        pass

    @abstractmethod
    def _get_endpoint_search(self) -> str:
        """Returns the endpoint path for similarity searches."""
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self) -> str:
        """Returns the endpoint path for deleting points by filter."""
        pass

    @abstractmethod
    def _get_endpoint_count(self) -> str:
        """Returns the endpoint path for counting points matching a filter."""
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self) -> str:
        """Returns the endpoint path for the collection existence check."""
        pass

    @abstractmethod
    def _get_endpoint_create_collection(self) -> str:
        """Returns the endpoint path for collection creation."""
        pass

    @abstractmethod
    def _get_endpoint_payload_index(self) -> str:
        """Returns the endpoint path for payload index creation."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_filter_payload(self, filters: dict[str, str]) -> dict:
        """Translate ``{field: value}`` exact matches into the backend filter syntax."""
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], limit: int, filters: dict[str, str]) -> dict:
        """Builds the request body of a filtered similarity search returning payloads."""
        pass

    @abstractmethod
    def get_upsert_payload(self, points: list[IndexPoint]) -> dict:
        """Builds the request body of a point upsert."""
        pass

    @abstractmethod
    def get_delete_payload(self, filters: dict[str, str]) -> dict:
        """Builds the request body of a filter-based delete."""
        pass

    @abstractmethod
    def get_count_payload(self, filters: dict[str, str]) -> dict:
        """Builds the request body of an exact point count."""
        pass

    @abstractmethod
    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        """Builds the request body of a collection creation."""
        pass

    @abstractmethod
    def get_payload_index_payload(self, field_name: str) -> dict:
        """Builds the request body of a keyword payload index creation."""
        pass

    ################ RESPONSE PARSER ##################
    @abstractmethod
    def extract_search_results(self, raw_response: dict) -> list[dict]:
        """Returns the raw hits ({"id", "score", "payload"}) of a search response in ranked order."""
        pass

    @abstractmethod
    def extract_existence(self, raw_response: dict) -> bool:
        """Returns whether the collection exists according to the raw response."""
        pass

    @abstractmethod
    def extract_count(self, raw_response: dict) -> int:
        """Returns the point count of a raw count response."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _do_json_request(self, method: str, endpoint: str, body: dict) -> httpx.Response:
        return await self.do_request(
            method=method,
            content=json.dumps(body),
            endpoint=endpoint,
            additional_headers={"Content-Type": "application/json"},
            raise_on_error=True,
        )

    async def do_existence_check(self) -> bool:
        """Check if the collection exists in the vector index."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_check_collection_existence(), raise_on_error=True)
        return self.extract_existence(resp.json())

    async def do_create_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        """Create the collection.

        Args:
            vector_size (int): Dimension of the embedding vectors.
            distance (str): Distance metric, e.g. "Cosine".
        """
        await self._do_json_request("PUT", self._get_endpoint_create_collection(), self.get_create_collection_payload(vector_size, distance))

    async def do_create_payload_indexes(self) -> None:
        """Create keyword indexes on the isolation fields (user_id, document_id).

        Without them filtered search and delete degrade to full scans.
        Creating an index that already exists is a no-op on the backend.
        """
        for field_name in INDEXED_PAYLOAD_FIELDS:
            await self._do_json_request("PUT", self._get_endpoint_payload_index(), self.get_payload_index_payload(field_name))
            self.logging.debug("Ensured payload index on '%s'.", field_name)

    async def do_ensure_collection(self, vector_size: int, distance: str = "Cosine") -> None:
        """Create the collection if missing and make sure the payload indexes exist.

        Raises:
            IndexWriteError: If any setup request fails.
        """
        try:
            if not await self.do_existence_check():
                self.logging.info("Creating collection on %s (size=%d, distance=%s).", self.get_engine_name(), vector_size, distance)
                await self.do_create_collection(vector_size=vector_size, distance=distance)
            await self.do_create_payload_indexes()
        except httpx.HTTPError as exc:
            raise IndexWriteError(f"Collection setup failed on {self.get_engine_name()}: {exc}") from exc

    async def do_upsert_points(self, points: list[IndexPoint]) -> None:
        """Insert or replace points, waiting until they are searchable.

        Idempotent per point id.

        Raises:
            IndexWriteError: If the backend rejects the upsert.
        """
        if not points:
            return
        for point in points:
            if not point.payload.user_id:
                raise IndexWriteError(f"Point {point.id} has no user_id; refusing to index it.")
        try:
            await self._do_json_request("PUT", self._get_endpoint_points(), self.get_upsert_payload(points))
        except httpx.HTTPError as exc:
            raise IndexWriteError(
                f"Upsert of {len(points)} point(s) failed: {exc}",
                details={"document_ids": sorted({p.payload.document_id for p in points})},
            ) from exc

    async def do_search(self, vector: list[float], limit: int, filters: dict[str, str]) -> list[SearchHit]:
        """Filtered similarity search.

        Args:
            vector (list[float]): The query vector.
            limit (int): Maximum number of hits.
            filters (dict[str, str]): Exact-match predicates; must contain user_id.

        Returns:
            list[SearchHit]: Hits by descending score, unique ids, empty when nothing matches.

        Raises:
            ValueError: If the filter is not scoped to a user.
            IndexSearchError: If the backend request fails or returns malformed hits.
        """
        self._check_filters(filters, require_isolation=True)
        if limit <= 0:
            return []
        try:
            resp = await self._do_json_request("POST", self._get_endpoint_search(), self.get_search_payload(vector, limit, filters))
            raw_hits = self.extract_search_results(resp.json())
            hits = [SearchHit(id=str(hit.get("id")), score=float(hit.get("score", 0.0)), payload=hit.get("payload") or {}) for hit in raw_hits]
        except httpx.HTTPError as exc:
            raise IndexSearchError(f"Search on {self.get_engine_name()} failed: {exc}") from exc
        except (ValidationError, ValueError, TypeError, AttributeError) as exc:
            raise IndexSearchError(f"Malformed search response from {self.get_engine_name()}: {exc}") from exc

        seen: set[str] = set()
        unique: list[SearchHit] = []
        for hit in hits:
            if hit.id in seen:
                continue
            seen.add(hit.id)
            unique.append(hit)
        # stable sort keeps the backend order for equal scores
        unique.sort(key=lambda h: h.score, reverse=True)
        return unique[:limit]

    async def do_delete_points_by_filter(self, filters: dict[str, str]) -> None:
        """Delete all points matching the filter, waiting for completion.

        Raises:
            ValueError: If the filter is empty.
            IndexWriteError: If the backend rejects the delete.
        """
        self._check_filters(filters, require_isolation=False)
        try:
            await self._do_json_request("POST", self._get_endpoint_delete_points(), self.get_delete_payload(filters))
        except httpx.HTTPError as exc:
            raise IndexWriteError(f"Delete by filter {filters} failed: {exc}") from exc

    async def do_count(self, filters: dict[str, str]) -> int:
        """Count the points matching the filter exactly.

        Raises:
            IndexSearchError: If the backend request fails.
        """
        self._check_filters(filters, require_isolation=False)
        try:
            resp = await self._do_json_request("POST", self._get_endpoint_count(), self.get_count_payload(filters))
        except httpx.HTTPError as exc:
            raise IndexSearchError(f"Count on {self.get_engine_name()} failed: {exc}") from exc
        return self.extract_count(resp.json())
