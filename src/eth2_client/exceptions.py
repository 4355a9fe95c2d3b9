"""
Exception hierarchy for the client.

Errors split along two axes: whether the node answered at all, and
whether what it answered could be understood.

- `UpstreamUnavailableError` is transient. Nothing is cached, so the next
  call retries.
- `MissingKeyError` and `ConfigFormatError` mean the node answered but the
  answer is unusable. A node's static configuration does not change during
  a session, so retrying will not help. The usual cause is a client/node
  version mismatch.
"""

from __future__ import annotations

from typing import Any


class Eth2ClientError(Exception):
    """
    Base exception for all client errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class ParseFailure(Eth2ClientError, ValueError):
    """
    Raised when a raw value cannot be decoded into the requested shape.

    Raised by the pure parsers, which do not know which configuration key
    the value came from. Callers holding a key wrap this in `ConfigFormatError`.
    """


class MissingKeyError(Eth2ClientError):
    """
    Raised when the node's configuration does not contain a requested entry.

    Attributes:
        key: The configuration key that was looked up.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"config did not provide {key} value")


class ConfigFormatError(Eth2ClientError):
    """
    Raised when a configuration entry exists but cannot be decoded.

    Attributes:
        key: The configuration key that was looked up.
        value: The raw value the node returned (truncated for display).
    """

    def __init__(self, key: str, value: Any) -> None:
        self.key = key
        self.value = value

        value_repr = repr(value)
        if len(value_repr) > 50:
            value_repr = value_repr[:47] + "..."

        super().__init__(f"failed to convert value {value_repr} for {key}")


class UpstreamUnavailableError(Eth2ClientError):
    """
    Raised when a request to the node fails at the transport level.

    Covers connection failures, timeouts and non-success statuses.
    The original transport error is chained as `__cause__`.

    Attributes:
        operation: What was being fetched (e.g. "configuration", "genesis").
        detail: Description of the transport failure.
    """

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"failed to obtain {operation}: {detail}")


class NodeConnectionError(Eth2ClientError):
    """
    Raised when a service cannot confirm its node connection at construction.

    No service object is returned when this is raised.

    Attributes:
        address: The address that was checked.
    """

    def __init__(self, address: str, detail: str) -> None:
        self.address = address
        super().__init__(f"failed to confirm node connection to {address}: {detail}")


class InvalidParametersError(Eth2ClientError, ValueError):
    """Raised when service construction parameters are missing or invalid."""
