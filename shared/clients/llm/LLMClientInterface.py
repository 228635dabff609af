from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class LLMClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # chat / completion config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL")
        self.temperature = helper_config.get_number_val(f"{self.get_client_type().upper()}_TEMPERATURE", default=0.2)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/api/chat")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(self, messages: list[dict]) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[dict]): OpenAI-format messages
                (e.g. [{"role": "user", "content": "..."}]).

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from a raw chat API response.

        Raises:
            ValueError: If the response does not contain a reply.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_chat(self, messages: list[dict]) -> str:
        """Send a chat/completion request and return the assistant reply text.

        Args:
            messages (list[dict]): OpenAI-format messages.

        Returns:
            str: The assistant reply text.

        Raises:
            httpx.HTTPError: If the request fails or returns a non-2xx status.
            ValueError: If the response does not contain a valid reply.
        """
        body = self.get_chat_payload(messages)
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            raise_on_error=True,
        )
        return self.extract_chat_response(response.json())
