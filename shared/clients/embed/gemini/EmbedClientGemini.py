from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.models.EmbedTask import EmbedTask
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

_TASK_TYPES = {
    EmbedTask.QUERY: "RETRIEVAL_QUERY",
    EmbedTask.DOCUMENT: "RETRIEVAL_DOCUMENT",
}


class EmbedClientGemini(EmbedClientInterface):
    """Embedding client for the Google Generative Language REST API."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://generativelanguage.googleapis.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._api_version = self.get_config_val("API_VERSION", default="v1beta", val_type="string")
        self._output_dimensionality = self.get_config_val("OUTPUT_DIMENSIONALITY", default=0, val_type="number")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Gemini"

    def _get_model_path(self) -> str:
        model = self.embed_model
        return model if model.startswith("models/") else f"models/{model}"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://generativelanguage.googleapis.com"),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="API_VERSION", val_type="string", default="v1beta"),
            EnvConfig(env_key="OUTPUT_DIMENSIONALITY", val_type="number", default=0),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"x-goog-api-key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/{self._api_version}/{self._get_model_path()}"

    def get_endpoint_embedding(self) -> str:
        return f"/{self._api_version}/{self._get_model_path()}:batchEmbedContents"

    ################ PAYLOAD BUILDER ##################
    def get_embed_payload(self, texts: list[str], task: EmbedTask) -> dict:
        """Build a batchEmbedContents body, one request per text."""
        requests = []
        for text in texts:
            request = {
                "model": self._get_model_path(),
                "content": {"parts": [{"text": text}]},
                "taskType": _TASK_TYPES[task],
            }
            if self._output_dimensionality:
                request["outputDimensionality"] = int(self._output_dimensionality)
            requests.append(request)
        return {"requests": requests}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract vectors from {"embeddings": [{"values": [...]}, ...]}.

        Raises:
            ValueError: If the response has no embeddings list.
        """
        if not isinstance(response_data, dict):
            raise ValueError(f"Gemini embed response is not an object: {type(response_data).__name__}")
        embeddings = response_data.get("embeddings")
        if not isinstance(embeddings, list):
            raise ValueError(
                "Gemini response does not contain embeddings. "
                f"Response keys: {list(response_data.keys())}"
            )
        if not all(isinstance(item, dict) for item in embeddings):
            raise ValueError("Gemini response contains non-object embeddings.")
        return [item.get("values") for item in embeddings]
