"""
Fixed-length byte array types.

Domain separation tags are 4 bytes and roots are 32 bytes. Both are
immutable `bytes` subclasses whose length is checked on construction, so
a value that exists is always complete.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, ClassVar, SupportsIndex

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema
from typing_extensions import Self


def _to_bytes(value: Any) -> bytes:
    """Convert bytes-like values, hex strings or byte iterables to `bytes`."""
    match value:
        case bytes() | bytearray() | memoryview():
            return bytes(value)
        case str():
            return bytes.fromhex(value.removeprefix("0x").removeprefix("0X"))
        case Iterable():
            # Rejects anything outside [0, 255].
            return bytes(bytearray(value))
        case _:
            raise TypeError(f"cannot build a byte array from {type(value).__name__}")


class BaseBytes(bytes):
    """
    Immutable byte string of one exact length.

    Subclasses only declare `LENGTH`.
    """

    LENGTH: ClassVar[int]
    """Required number of bytes."""

    def __new__(cls, value: Any = b"") -> Self:
        """
        Build a value, checking its length.

        Args:
            value: Raw bytes, a hex string (optionally 0x-prefixed) or an
                iterable of byte values.

        Raises:
            ValueError: If the decoded length is not `LENGTH`.
        """
        length = getattr(cls, "LENGTH", None)
        if length is None:
            raise TypeError(f"{cls.__name__} has no LENGTH")

        data = _to_bytes(value)
        if len(data) != length:
            raise ValueError(f"{cls.__name__} expects exactly {length} bytes, got {len(data)}")
        return super().__new__(cls, data)

    @classmethod
    def zero(cls) -> Self:
        """The all-zero value."""
        return cls(bytes(cls.LENGTH))

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        """
        Let pydantic models hold byte arrays.

        Existing instances pass through. Other input goes through the
        constructor, so Beacon API hex strings validate directly. Values
        serialize back to 0x-prefixed hex.
        """

        def build(value: Any) -> BaseBytes:
            try:
                return cls(value)
            except TypeError as e:
                raise ValueError(str(e)) from e

        return core_schema.union_schema(
            [
                core_schema.is_instance_schema(cls),
                core_schema.no_info_plain_validator_function(build),
            ],
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: "0x" + value.hex()
            ),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.hex()})"

    def __hash__(self) -> int:
        # Equal bytes of different types hash apart.
        return hash((type(self), bytes(self)))

    def hex(self, sep: str | bytes | None = None, bytes_per_sep: SupportsIndex = 1) -> str:
        """Hex digits of the raw bytes, without a prefix."""
        raw = bytes(self)
        return raw.hex() if sep is None else raw.hex(sep, bytes_per_sep)


class Bytes4(BaseBytes):
    """Exactly 4 bytes."""

    LENGTH = 4


class Bytes32(BaseBytes):
    """Exactly 32 bytes."""

    LENGTH = 32


class Bytes48(BaseBytes):
    """Exactly 48 bytes."""

    LENGTH = 48


class DomainType(Bytes4):
    """
    A signature domain separation tag.

    Mixed into the signing root so that a signature over one message type
    can never be replayed as a signature over another.
    """


class Root(Bytes32):
    """A 32-byte hash tree root."""


class BLSPubkey(Bytes48):
    """A compressed BLS12-381 public key."""
