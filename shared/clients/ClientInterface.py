from abc import ABC, abstractmethod

import httpx
from httpx._types import QueryParamTypes, RequestContent
from typing import Any
from shared.models.config import EnvConfig

from shared.helper.HelperConfig import HelperConfig


class ClientInterface(ABC):
    """Base class of every backend client (embedding, LLM, vector index).

    Owns one shared ``httpx.AsyncClient`` per client instance. Subclasses only
    describe their backend: engine name, required config, auth header, base
    URL and endpoints.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)

        # client and config
        self._client: httpx.AsyncClient | None = None
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Reads every required configuration value once so missing settings
        fail at startup instead of on the first request.

        Raises:
            ValueError: If any required configuration value is missing or invalid.
        """
        for config in self._get_required_config():
            _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    def is_booted(self) -> bool:
        return self._client is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """
        Returns the type of the client in lowercase. E.g. "embed"
        """
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        pass

    def get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client in lowercase. E.g. "qdrant"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        """
        Returns the name of the engine used by the client. E.g. "Qdrant"
        """
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns all configuration keys the client reads.

        Returns:
            list[EnvConfig]: The details of each configuration key.
        """
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        """
        Returns:
            str: The full configuration key name for the client. E.g. "RAG_QDRANT_API_KEY"
        """
        key_prefix = f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}"
        return f"{key_prefix}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Retrieves the value of an engine-scoped configuration key.

        Args:
            raw_key (str): The raw configuration key name, e.g. "BASE_URL"
            default (Any): The default value to return if the configuration key is not set
            val_type (str): The type of the configuration value ("string", "number", "bool", "list")
        """
        key = self._get_config_key_name(raw_key)
        if val_type == "string":
            return self._helper_config.get_string_val(key, default=default)
        elif val_type == "number":
            return self._helper_config.get_number_val(key, default=default)
        elif val_type == "bool":
            return self._helper_config.get_bool_val(key, default=default)
        elif val_type == "list":
            return self._helper_config.get_list_val(key, default=default)
        else:
            raise ValueError(f"Unsupported config value type '{val_type}' for env key '{raw_key}' in {self.get_client_type().upper()} client '{self.get_engine_name()}'.")

    ################ AUTH ##################
    @abstractmethod
    def _get_auth_header(self) -> dict:
        """
        Returns the authentication header for the backend, empty if no API key is set.
        """
        pass

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_base_url(self) -> str:
        """
        Returns the base URL of the backend server (e.g. "http://localhost:6333").
        """
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        """
        Returns the endpoint path for healthcheck requests (e.g. "/healthz").
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        """Send a request to the backend's healthcheck endpoint.

        Returns:
            httpx.Response: The raw response; callers decide whether a failure is fatal.
        """
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck())

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Create the HTTP client.

        Args:
            transport: Optional custom transport, e.g. ``httpx.MockTransport`` in tests.
        """
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_request(
        self,
        method: str = "GET",
        content: RequestContent | None = None,
        json: dict | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send an HTTP request to the backend.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, …).
            content: Raw bytes / string body. The caller sets the Content-Type.
            json: JSON-serialisable body (sets Content-Type automatically).
            params: URL query parameters.
            endpoint: Path to append to the base URL (leading slash optional).
            additional_headers: Extra headers that override the defaults.
            raise_on_error: Raise on any non-2xx status instead of returning the response.

        Returns:
            httpx.Response: The raw response.

        Raises:
            RuntimeError: If boot() has not been called.
            httpx.HTTPError: On transport failures, and on non-2xx statuses when
                raise_on_error is True (as httpx.HTTPStatusError).
        """
        if self._client is None:
            raise RuntimeError(f"HTTP client of {self.__class__.__name__} not initialised. Call boot() before making requests.")

        endpoint = "/" + endpoint.strip().lstrip("/") if endpoint.strip() else ""

        headers: dict = {}
        headers.update(self._get_auth_header())
        if additional_headers:
            headers.update(additional_headers)

        kwargs: dict = {
            "url": f"{self._get_base_url().rstrip('/')}{endpoint}",
            "headers": headers,
            "timeout": self.timeout,
            "params": params,
        }

        # add exactly one body argument
        if content is not None:
            kwargs["content"] = content
        elif json is not None:
            kwargs["json"] = json

        response = await self._client.request(method, **kwargs)

        if raise_on_error and not response.is_success:
            self.logging.error(
                "Request to %s failed with status %d: %s",
                kwargs["url"],
                response.status_code,
                response.text[:300],
            )
            response.raise_for_status()

        return response
