"""Reusable type definitions for the client."""

from .base import NodeResponseModel, StrictBaseModel
from .byte_arrays import BLSPubkey, Bytes4, Bytes32, Bytes48, DomainType, Root
from .uint import Epoch, Gwei, Slot, Uint64, ValidatorIndex

__all__ = [
    # Integers
    "Uint64",
    "Slot",
    "Epoch",
    "ValidatorIndex",
    "Gwei",
    # Byte arrays
    "Bytes4",
    "Bytes32",
    "Bytes48",
    "DomainType",
    "Root",
    "BLSPubkey",
    # Models
    "StrictBaseModel",
    "NodeResponseModel",
]
