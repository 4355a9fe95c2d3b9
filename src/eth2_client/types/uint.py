"""Unsigned integer types for chain parameters."""

from __future__ import annotations

from typing import Any, ClassVar, SupportsInt

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema
from typing_extensions import Self


class BaseUint(int):
    """An `int` restricted to the range of an unsigned integer of `BITS` bits."""

    BITS: ClassVar[int]
    """Width of the integer."""

    def __new__(cls, value: SupportsInt | str) -> Self:
        """
        Build a value, checking its range.

        Decimal strings are accepted because Beacon API JSON quotes every
        64-bit quantity.

        Raises:
            OverflowError: If `value` is negative or needs more than `BITS` bits.
        """
        number = int(value)
        if number < 0 or number >> cls.BITS:
            raise OverflowError(f"{number} does not fit in {cls.__name__}")
        return super().__new__(cls, number)

    @classmethod
    def max(cls) -> Self:
        """The largest value of this type."""
        return cls((1 << cls.BITS) - 1)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        """Validate through the constructor and serialize as a decimal string."""

        def build(value: Any) -> BaseUint:
            # bool is an int subclass, but never a valid quantity.
            if isinstance(value, bool):
                raise ValueError(f"{cls.__name__} does not accept booleans")
            try:
                return cls(value)
            except (OverflowError, TypeError) as e:
                raise ValueError(str(e)) from e

        return core_schema.no_info_plain_validator_function(
            build,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: str(int(value))
            ),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({int(self)})"

    def __str__(self) -> str:
        return int.__repr__(self)

    def __hash__(self) -> int:
        return int.__hash__(self)


class Uint64(BaseUint):
    """Unsigned 64-bit integer."""

    BITS = 64


class Slot(Uint64):
    """A slot number."""


class Epoch(Uint64):
    """An epoch number."""


class ValidatorIndex(Uint64):
    """A validator's position in the registry."""


class Gwei(Uint64):
    """An amount of ether in units of 10^-9 ETH."""
