import httpx
from typing import Tuple

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.models.EmbedTask import EmbedTask
from shared.exceptions import EmbeddingError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOllama(EmbedClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        # asymmetric models such as nomic-embed-text expect task prefixes
        # env values arrive stripped, the separating blank is added back
        self._query_prefix = self._as_prefix(self.get_config_val("QUERY_PREFIX", default="", val_type="string"))
        self._document_prefix = self._as_prefix(self.get_config_val("DOCUMENT_PREFIX", default="", val_type="string"))

    @staticmethod
    def _as_prefix(value: str) -> str:
        return f"{value} " if value else ""

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Ollama"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="QUERY_PREFIX", val_type="string", default=""),
            EnvConfig(env_key="DOCUMENT_PREFIX", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        # root on ollama
        return ""

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_endpoint_model_details(self) -> str:
        # model name goes into the body
        return "/api/show"

    ################ PAYLOAD BUILDER ##################
    def _get_task_prefix(self, task: EmbedTask) -> str:
        return self._query_prefix if task == EmbedTask.QUERY else self._document_prefix

    def get_embed_payload(self, texts: list[str], task: EmbedTask) -> dict:
        """Build the Ollama embedding request body.

        Returns:
            dict: {"model": "...", "input": [...]} with the task prefix applied to every input.
        """
        prefix = self._get_task_prefix(task)
        return {"model": self.embed_model, "input": [f"{prefix}{text}" for text in texts]}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        info: dict = model_info.get("model_info", {})
        for key, value in info.items():
            if key.endswith(".embedding_length"):
                return int(value)
        raise ValueError(f"Could not determine embedding vector size for model {self.embed_model}")

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from an Ollama /api/embed response.

        Raises:
            ValueError: If the response has no "embeddings" list.
        """
        if not isinstance(response_data, dict):
            raise ValueError(f"Ollama embed response is not an object: {type(response_data).__name__}")
        embeddings = response_data.get("embeddings")
        if not isinstance(embeddings, list):
            raise ValueError(
                "Ollama response does not contain embeddings. "
                f"Response keys: {list(response_data.keys())}"
            )
        return embeddings

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_embedding_vector_size(self) -> Tuple[int, str]:
        """Read the embedding length from Ollama's model info instead of probing."""
        try:
            response = await self.do_request(
                method="POST",
                json={"name": self.embed_model},
                endpoint=self.get_endpoint_model_details(),
                raise_on_error=True,
            )
            vector_size = self.extract_vector_size_from_model_info(model_info=response.json())
        except (httpx.HTTPError, ValueError) as exc:
            raise EmbeddingError(f"Could not read vector size of model '{self.embed_model}': {exc}") from exc
        return vector_size, self.embed_distance
