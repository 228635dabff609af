from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

# OpenAI-style role → Gemini content role
_ROLE_MAP = {"user": "user", "assistant": "model"}


class LLMClientGemini(LLMClientInterface):
    """Chat client for the Google Generative Language generateContent API."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="https://generativelanguage.googleapis.com", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._api_version = self.get_config_val("API_VERSION", default="v1beta", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Gemini"

    def _get_model_path(self) -> str:
        model = self.chat_model
        return model if model.startswith("models/") else f"models/{model}"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://generativelanguage.googleapis.com"),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="API_VERSION", val_type="string", default="v1beta"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"x-goog-api-key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/{self._api_version}/{self._get_model_path()}"

    def _get_endpoint_chat(self) -> str:
        return f"/{self._api_version}/{self._get_model_path()}:generateContent"

    ################ PAYLOAD BUILDER ##################
    def get_chat_payload(self, messages: list[dict]) -> dict:
        """Translate OpenAI-format messages into a generateContent body.

        System messages become ``systemInstruction``; the remaining turns keep
        their order as ``contents``.
        """
        system_parts = [{"text": m["content"]} for m in messages if m.get("role") == "system"]
        contents = [
            {"role": _ROLE_MAP.get(m.get("role"), "user"), "parts": [{"text": m["content"]}]}
            for m in messages
            if m.get("role") != "system"
        ]
        payload: dict = {
            "contents": contents,
            "generationConfig": {"temperature": self.temperature},
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        return payload

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_chat_response(self, response_data: dict) -> str:
        """Join the text parts of the first candidate.

        Raises:
            ValueError: If there is no candidate (e.g. the prompt was blocked).
        """
        if not isinstance(response_data, dict):
            raise ValueError(f"Gemini chat response is not an object: {type(response_data).__name__}")
        candidates = response_data.get("candidates") or []
        if not candidates:
            feedback = response_data.get("promptFeedback", {})
            raise ValueError("Gemini returned no candidates. Prompt feedback: %s" % feedback)
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)
