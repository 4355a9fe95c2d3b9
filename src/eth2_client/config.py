"""
Global configuration for the client.

Environment-derived defaults that apply to every backend. Explicit
construction parameters always take precedence over these.
"""

import logging
import os

_SUPPORTED_LOG_LEVELS: dict[str, int] = {
    "trace": 5,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}
"""Log level names accepted in configuration, mapped to `logging` levels."""

DEFAULT_TIMEOUT = float(os.environ.get("ETH2_CLIENT_TIMEOUT", "120"))
"""Default per-request timeout in seconds."""

DEFAULT_LOG_LEVEL_NAME = os.environ.get("ETH2_CLIENT_LOG_LEVEL", "info").lower()
"""Name of the default log level, as given in the environment."""

if DEFAULT_LOG_LEVEL_NAME not in _SUPPORTED_LOG_LEVELS:
    raise ValueError(
        f"Invalid ETH2_CLIENT_LOG_LEVEL environment variable: '{DEFAULT_LOG_LEVEL_NAME}'. "
        f"Supported values: {list(_SUPPORTED_LOG_LEVELS)}"
    )

if DEFAULT_TIMEOUT <= 0:
    raise ValueError(f"Invalid ETH2_CLIENT_TIMEOUT environment variable: {DEFAULT_TIMEOUT}")

DEFAULT_LOG_LEVEL = _SUPPORTED_LOG_LEVELS[DEFAULT_LOG_LEVEL_NAME]
"""Default log level for service loggers. Defaults to INFO."""


def log_level_from_name(name: str) -> int:
    """
    Resolve a log level name to its numeric `logging` level.

    Raises:
        ValueError: If the name is not a supported level.
    """
    try:
        return _SUPPORTED_LOG_LEVELS[name.lower()]
    except KeyError:
        raise ValueError(
            f"unknown log level '{name}'; supported values: {list(_SUPPORTED_LOG_LEVELS)}"
        ) from None
