from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class LLMClientOllama(LLMClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

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
        return ""

    def _get_endpoint_chat(self) -> str:
        return "/api/chat"

    ################ PAYLOAD BUILDER ##################
    def get_chat_payload(self, messages: list[dict]) -> dict:
        """Build the Ollama chat request body.

        Returns:
            dict: {"model": "...", "messages": [...], "stream": False, "options": {...}}
        """
        return {
            "model": self.chat_model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": self.temperature},
        }

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from an Ollama /api/chat response.

        Raises:
            ValueError: If the response does not contain a message.
        """
        if not isinstance(response_data, dict):
            raise ValueError(f"Ollama chat response is not an object: {type(response_data).__name__}")
        message = response_data.get("message")
        if not isinstance(message, dict):
            message = {}
        content = message.get("content")
        if content is None:
            raise ValueError(
                "Ollama chat response does not contain a valid message. "
                "Response keys: %s" % list(response_data.keys())
            )
        return content
