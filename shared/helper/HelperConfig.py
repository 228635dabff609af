"""Central configuration helper for the document chat bridge."""

import logging
import os


class HelperConfig:
    """Reads every setting of the service from environment variables."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string environment variable.

        Args:
            key (str): Environment variable name (case-insensitive).
            default (str | None): Fallback value if the variable is not set.

        Returns:
            str: The stripped value, or the default.

        Raises:
            ValueError: If the variable is not set and no default is provided.
        """
        key = key.upper()
        val = os.getenv(key) or None  # empty string → None
        if val is None and default is None:
            raise ValueError(f"Environment variable '{key}' is not set.")
        return val.strip() if val is not None else default

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric environment variable.

        Values containing a dot are parsed as float, everything else as int.

        Raises:
            ValueError: If the variable is missing without default or is not numeric.
        """
        key = key.upper()
        raw = os.getenv(key) or None
        if raw is None:
            if default is None:
                raise ValueError(f"Environment variable '{key}' is not set.")
            return default
        try:
            return int(raw) if "." not in raw else float(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key}' is not a valid number: '{raw}'.")

    def get_int_val(self, key: str, default: int | None = None, minimum: int | None = None) -> int:
        """Read a whole-number environment variable, optionally enforcing a lower bound.

        Used for sizes and limits (chunk size, top-k, batch sizes) where a
        fractional or non-positive value would silently break the pipeline.

        Raises:
            ValueError: If the value is missing, fractional or below ``minimum``.
        """
        val = self.get_number_val(key, default=default)
        if isinstance(val, float) and not val.is_integer():
            raise ValueError(f"Environment variable '{key.upper()}' must be a whole number, got {val}.")
        val = int(val)
        if minimum is not None and val < minimum:
            raise ValueError(f"Environment variable '{key.upper()}' must be >= {minimum}, got {val}.")
        return val

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean environment variable ("true", "1" and "yes" are truthy)."""
        key = key.upper()
        raw = os.getenv(key) or None
        if raw is None:
            if default is None:
                raise ValueError(f"Environment variable '{key}' is not set.")
            return default
        return raw.strip().lower() in ("true", "1", "yes")

    def get_list_val(self, key: str, default: list[str] | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list environment variable written as ``[elem1,elem2,...]``.

        Raises:
            ValueError: If the variable is missing without default, is not
                wrapped in brackets, or an element cannot be cast.
        """
        key = key.upper()
        raw_val = os.getenv(key) or None
        if raw_val is None:
            if default is None:
                raise ValueError(f"Environment variable '{key}' is not set.")
            return default
        raw_val = raw_val.strip()
        if not raw_val.startswith("[") or not raw_val.endswith("]"):
            raise ValueError(f"Environment variable '{key}' must be in the format '[elem1{separator}elem2{separator}...]'. Got: '{raw_val}'")
        elements = [v.strip() for v in raw_val[1:-1].split(separator) if v.strip()]
        try:
            return [element_type(elem) for elem in elements]
        except ValueError as e:
            raise ValueError(f"Environment variable '{key}' contains invalid elements: {e}. Type set to {element_type.__name__}. Got: '{raw_val}'")

    ################ PATHS ##################
    def get_root_dir(self) -> str:
        """Return the service root directory (``ROOT_DIR``, defaults to the working directory)."""
        return self.get_string_val("ROOT_DIR", default=os.getcwd())

    def get_database_url(self) -> str:
        """Return the SQLAlchemy async database URL.

        Falls back to a SQLite file below ``<ROOT_DIR>/data`` so a fresh
        checkout runs without an external database.
        """
        default = "sqlite+aiosqlite:///" + os.path.join(self.get_root_dir(), "data", "doc_chat.db")
        return self.get_string_val("DATABASE_URL", default=default)

    def get_logger(self) -> logging.Logger:
        """Return the application logger."""
        return self._logger
