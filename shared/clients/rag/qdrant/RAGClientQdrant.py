from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import IndexPoint
from shared.models.config import EnvConfig


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default="pdf-embeddings", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    def get_collection_name(self) -> str:
        return self._collection_name

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="pdf-embeddings"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    # wait=true: the call returns only once the change is applied and searchable
    def _get_endpoint_points(self) -> str:
        return f"/collections/{self._collection_name}/points?wait=true"

    def _get_endpoint_delete_points(self) -> str:
        return f"/collections/{self._collection_name}/points/delete?wait=true"

    def _get_endpoint_payload_index(self) -> str:
        return f"/collections/{self._collection_name}/index?wait=true"

    def _get_endpoint_search(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_count(self) -> str:
        return f"/collections/{self._collection_name}/points/count"

    def _get_endpoint_check_collection_existence(self) -> str:
        return f"/collections/{self._collection_name}/exists"

    def _get_endpoint_create_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_filter_payload(self, filters: dict[str, str]) -> dict:
        return {"must": [{"key": key, "match": {"value": str(value)}} for key, value in filters.items()]}

    def get_search_payload(self, vector: list[float], limit: int, filters: dict[str, str]) -> dict:
        return {
            "vector": vector,
            "limit": limit,
            "with_payload": True,
            "with_vector": False,
            "filter": self.get_filter_payload(filters),
        }

    def get_upsert_payload(self, points: list[IndexPoint]) -> dict:
        return {
            "points": [
                {"id": point.id, "vector": point.vector, "payload": point.payload.model_dump()}
                for point in points
            ]
        }

    def get_delete_payload(self, filters: dict[str, str]) -> dict:
        return {"filter": self.get_filter_payload(filters)}

    def get_count_payload(self, filters: dict[str, str]) -> dict:
        return {"filter": self.get_filter_payload(filters), "exact": True}

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        return {"vectors": {"size": vector_size, "distance": distance}}

    def get_payload_index_payload(self, field_name: str) -> dict:
        return {"field_name": field_name, "field_schema": "keyword"}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_search_results(self, raw_response: dict) -> list[dict]:
        if not isinstance(raw_response, dict):
            raise ValueError(f"Qdrant search response is not an object: {type(raw_response).__name__}")
        result = raw_response.get("result")
        if not isinstance(result, list):
            raise ValueError(f"Qdrant search response has no result list: {list(raw_response.keys())}")
        return result

    def extract_existence(self, raw_response: dict) -> bool:
        return bool((raw_response.get("result") or {}).get("exists"))

    def extract_count(self, raw_response: dict) -> int:
        return int((raw_response.get("result") or {}).get("count", 0))
