"""
Construction parameters shared by all backends.

Parameters are validated before any network I/O happens. A bad address or
timeout fails immediately with `InvalidParametersError` and never
produces a half-built service.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

from pydantic import Field, ValidationError, field_validator

from eth2_client.config import DEFAULT_LOG_LEVEL, DEFAULT_TIMEOUT, log_level_from_name
from eth2_client.exceptions import InvalidParametersError
from eth2_client.types import StrictBaseModel


class ServiceParameters(StrictBaseModel):
    """Validated options for constructing a backend service."""

    address: str = Field(min_length=1)
    """Address of the node. Required."""

    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    """Per-request timeout in seconds."""

    log_level: int = DEFAULT_LOG_LEVEL
    """Verbosity of the service logger."""

    @field_validator("address", mode="before")
    @classmethod
    def _strip_address(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("timeout", mode="before")
    @classmethod
    def _timeout_seconds(cls, value: Any) -> Any:
        # timedelta is accepted for convenience.
        total_seconds = getattr(value, "total_seconds", None)
        if callable(total_seconds):
            return float(total_seconds())
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _log_level_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return log_level_from_name(value)
        return value


def parse_and_check_parameters(**kwargs: Any) -> ServiceParameters:
    """
    Build and validate service parameters.

    Args:
        **kwargs: `address`, `timeout` and `log_level`.

    Raises:
        InvalidParametersError: If a parameter is missing or invalid.
    """
    try:
        return ServiceParameters(**kwargs)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'parameters'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidParametersError(f"problem with parameters: {problems}") from e


_service_ids = itertools.count(1)
"""Numbers the per-instance loggers."""


def service_logger(
    impl: str, address: str, level: int
) -> logging.LoggerAdapter[logging.Logger]:
    """
    Create the logger held by one service instance.

    Each call gets its own child of `eth2_client.<impl>`, so setting one
    service's level never changes another's. Records still propagate to
    handlers on the backend and package loggers, and carry the backend
    and address so that logs from several services can be told apart.
    """
    log = logging.getLogger(f"eth2_client.{impl}.{next(_service_ids)}")
    log.setLevel(level)
    return logging.LoggerAdapter(log, {"impl": impl, "address": address})
