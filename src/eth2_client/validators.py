"""
Validator registry entries as reported by a node.

These are read from a beacon state, so unlike chain parameters they change
from one state to the next and are never cached.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from enum import Enum

from eth2_client.exceptions import InvalidParametersError
from eth2_client.types import (
    BLSPubkey,
    Bytes32,
    Epoch,
    Gwei,
    NodeResponseModel,
    ValidatorIndex,
)

NAMED_STATES = frozenset({"head", "genesis", "finalized", "justified"})
"""State identifiers that name a state rather than locate it."""

_SLOT = re.compile(r"[0-9]+")
_STATE_ROOT = re.compile(r"0x[0-9a-f]{64}")


class ValidatorStatus(str, Enum):
    """Lifecycle status of a validator in a given state."""

    PENDING_INITIALIZED = "pending_initialized"
    PENDING_QUEUED = "pending_queued"
    ACTIVE_ONGOING = "active_ongoing"
    ACTIVE_EXITING = "active_exiting"
    ACTIVE_SLASHED = "active_slashed"
    EXITED_UNSLASHED = "exited_unslashed"
    EXITED_SLASHED = "exited_slashed"
    WITHDRAWAL_POSSIBLE = "withdrawal_possible"
    WITHDRAWAL_DONE = "withdrawal_done"

    @property
    def is_active(self) -> bool:
        """Whether the validator is currently in the active set."""
        return self.value.startswith("active_")


class Validator(NodeResponseModel):
    """A validator record from the registry."""

    pubkey: BLSPubkey
    withdrawal_credentials: Bytes32
    effective_balance: Gwei
    slashed: bool
    activation_eligibility_epoch: Epoch
    activation_epoch: Epoch
    exit_epoch: Epoch
    withdrawable_epoch: Epoch


class StateValidator(NodeResponseModel):
    """A validator as seen in one beacon state."""

    index: ValidatorIndex
    balance: Gwei
    """Actual balance, which may differ from the effective balance."""

    status: ValidatorStatus
    validator: Validator


ValidatorID = int | BLSPubkey
"""A validator named by registry index or public key."""


def state_path_segment(state_id: str | int) -> str:
    """
    Render a state identifier for use in a request path.

    Accepts a named state, a slot number or a 0x-prefixed state root.

    Raises:
        InvalidParametersError: If the identifier is none of these.
    """
    if isinstance(state_id, bool):
        raise InvalidParametersError(f"invalid state id {state_id!r}")
    if isinstance(state_id, int):
        if state_id < 0:
            raise InvalidParametersError(f"invalid state id {state_id!r}")
        return str(state_id)

    text = state_id.strip().lower()
    if text in NAMED_STATES or _SLOT.fullmatch(text) or _STATE_ROOT.fullmatch(text):
        return text
    raise InvalidParametersError(f"invalid state id {state_id!r}")


def validator_query(validator_ids: Sequence[ValidatorID] | None) -> list[str]:
    """
    Render validator identifiers as `id` query values.

    Indices go as decimals and public keys as 0x-prefixed hex.

    Raises:
        InvalidParametersError: If an identifier is neither a uint64 index
            nor a 48-byte key.
    """
    if validator_ids is None:
        return []

    values = []
    for validator_id in validator_ids:
        try:
            if isinstance(validator_id, bytes):
                values.append("0x" + BLSPubkey(validator_id).hex())
            elif isinstance(validator_id, int) and not isinstance(validator_id, bool):
                values.append(str(ValidatorIndex(validator_id)))
            else:
                raise TypeError(type(validator_id).__name__)
        except (OverflowError, TypeError, ValueError) as e:
            raise InvalidParametersError(f"invalid validator id {validator_id!r}") from e
    return values
