"""
Decoding of raw configuration values.

Nodes describe the same constants in different wire encodings:

- Prysm's gRPC config map formats every field with Go's `%v`, so a
  `[4]byte` domain arrives as `"[1 0 0 0]"` and a number as `"32"`.
  Newer releases emit byte arrays as `"0x01000000"`.
- The Beacon API (Teku) returns quoted JSON: `"0x01000000"` and `"32"`.

The functions here accept all of these and are pure: no I/O, no state.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from eth2_client.exceptions import ConfigFormatError, MissingKeyError, ParseFailure
from eth2_client.types import DomainType, Root, Uint64

T = TypeVar("T")


def parse_byte_array(raw: Any) -> bytes:
    """
    Decode a byte array from its configuration encoding.

    Accepts:
      - Raw bytes (protobuf `bytes` fields)
      - Hex strings, with or without a '0x' prefix ("0x01000000")
      - Go-formatted decimal byte lists ("[1 0 0 0]")
      - Lists of integers in [0, 255] (JSON arrays)

    Raises:
        ParseFailure: If the value is not one of the accepted forms.
    """
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)

    if isinstance(raw, (list, tuple)):
        try:
            return bytes(bytearray(raw))
        except (TypeError, ValueError) as e:
            raise ParseFailure(f"invalid byte list {raw!r}: {e}") from e

    if not isinstance(raw, str):
        raise ParseFailure(f"expected string or list for byte array, got {type(raw).__name__}")

    value = raw.strip()

    if value.startswith("[") and value.endswith("]"):
        # Go's %v on a byte array: space-separated decimals in brackets.
        parts = value[1:-1].split()
        try:
            return bytes(bytearray(int(part, 10) for part in parts))
        except ValueError as e:
            raise ParseFailure(f"invalid byte list {raw!r}: {e}") from e

    digits = value.removeprefix("0x").removeprefix("0X")
    if len(digits) % 2 != 0:
        raise ParseFailure(f"odd-length hex string {raw!r}")
    try:
        return bytes.fromhex(digits)
    except ValueError as e:
        raise ParseFailure(f"invalid hex string {raw!r}") from e


def parse_fixed_bytes(raw: Any, length: int) -> bytes:
    """
    Decode a byte array that must be exactly `length` bytes long.

    Raises:
        ParseFailure: If decoding fails or the length differs.
    """
    data = parse_byte_array(raw)
    if len(data) != length:
        raise ParseFailure(f"expected {length} bytes, got {len(data)}")
    return data


def parse_domain(raw: Any) -> DomainType:
    """Decode a 4-byte domain separation tag."""
    return DomainType(parse_fixed_bytes(raw, DomainType.LENGTH))


def parse_root(raw: Any) -> Root:
    """Decode a 32-byte root."""
    return Root(parse_fixed_bytes(raw, Root.LENGTH))


def parse_uint(raw: Any) -> Uint64:
    """
    Decode an unsigned 64-bit integer.

    Accepts ints, decimal strings and 0x-prefixed hex strings.

    Raises:
        ParseFailure: If the value is empty, negative, non-numeric or
            does not fit in 64 bits.
    """
    if isinstance(raw, bool):
        raise ParseFailure(f"expected integer, got boolean {raw!r}")

    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        text = raw.strip()
        try:
            if text[:2] in ("0x", "0X"):
                value = int(text[2:], 16)
            else:
                value = int(text, 10)
        except ValueError as e:
            raise ParseFailure(f"invalid integer {raw!r}") from e
    else:
        raise ParseFailure(f"expected integer or string, got {type(raw).__name__}")

    try:
        return Uint64(value)
    except OverflowError as e:
        raise ParseFailure(str(e)) from e


def parse_positive_uint(raw: Any) -> Uint64:
    """
    Decode an unsigned 64-bit integer that must not be zero.

    Used for counts and durations that later act as divisors.

    Raises:
        ParseFailure: If `parse_uint` rejects the value or it is zero.
    """
    value = parse_uint(raw)
    if value == 0:
        raise ParseFailure(f"expected a positive integer, got {raw!r}")
    return value


def config_value(config: Mapping[str, Any], key: str, parse: Callable[[Any], T]) -> T:
    """
    Look up and decode one entry of a node configuration.

    Args:
        config: The configuration as returned by the node.
        key: The entry to read.
        parse: One of the parsers in this module.

    Raises:
        MissingKeyError: If `key` is absent.
        ConfigFormatError: If the entry is present but `parse` rejects it.
    """
    if key not in config:
        raise MissingKeyError(key)

    value = config[key]
    try:
        return parse(value)
    except ParseFailure as e:
        raise ConfigFormatError(key, value) from e
