from typing import Literal

from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A single environment setting a client needs before it can boot.

    The full variable name is built by the client as
    ``<CLIENT_TYPE>_<ENGINE>_<ENV_KEY>``, e.g. ``RAG_QDRANT_COLLECTION``.

    Attributes:
        env_key (str): The raw key, without client type and engine prefix.
        val_type (str): How the value is parsed: "string", "number", "bool" or "list".
        default (str | int | float | bool | list | None): Fallback value. None marks the key as required.
    """

    env_key: str
    val_type: Literal["string", "number", "bool", "list"] = "string"
    default: str | int | float | bool | list | None = None
