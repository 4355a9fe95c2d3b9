"""
The uniform client contract.

Every backend implements the same set of capabilities, so callers can be
written once and pointed at any node::

    async def signing_domain(client: DomainProvider) -> DomainType:
        return await client.randao_domain()

Each capability is a small runtime-checkable protocol. Callers depend only
on what they use, and `isinstance` checks work against any backend.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from types import TracebackType
from typing import Protocol, runtime_checkable

from typing_extensions import Self

from eth2_client.events import BeaconChainHeadUpdatedHandler
from eth2_client.types import DomainType, Epoch, Root, Uint64, ValidatorIndex
from eth2_client.validators import StateValidator, ValidatorID


@runtime_checkable
class Service(Protocol):
    """A connection to a beacon node."""

    @property
    def name(self) -> str:
        """Static name of the backend implementation. No I/O."""
        ...

    @property
    def address(self) -> str:
        """The configured node address. No I/O."""
        ...


@runtime_checkable
class GenesisTimeProvider(Protocol):
    """Provides the genesis time of the chain."""

    async def genesis_time(self) -> datetime:
        """Time of slot 0, timezone-aware in UTC."""
        ...


@runtime_checkable
class GenesisValidatorsRootProvider(Protocol):
    """Provides the genesis validators root of the chain."""

    async def genesis_validators_root(self) -> Root:
        """Root of the validator registry at genesis."""
        ...


@runtime_checkable
class SlotDurationProvider(Protocol):
    """Provides the duration of a slot."""

    async def slot_duration(self) -> timedelta:
        """Time between consecutive slots."""
        ...


@runtime_checkable
class SlotsPerEpochProvider(Protocol):
    """Provides the number of slots in an epoch."""

    async def slots_per_epoch(self) -> Uint64:
        """Slots in every epoch."""
        ...


@runtime_checkable
class FarFutureEpochProvider(Protocol):
    """Provides the far future epoch marker."""

    async def far_future_epoch(self) -> Epoch:
        """Epoch value meaning "never"."""
        ...


@runtime_checkable
class TargetAggregatorsPerCommitteeProvider(Protocol):
    """Provides the target number of aggregators per committee."""

    async def target_aggregators_per_committee(self) -> Uint64:
        """Aggregators selected per attestation committee."""
        ...


@runtime_checkable
class DomainProvider(Protocol):
    """Provides the signature domain separation tags."""

    async def beacon_proposer_domain(self) -> DomainType:
        """Domain for block proposals."""
        ...

    async def beacon_attester_domain(self) -> DomainType:
        """Domain for attestations."""
        ...

    async def randao_domain(self) -> DomainType:
        """Domain for RANDAO reveals."""
        ...

    async def deposit_domain(self) -> DomainType:
        """Domain for deposits."""
        ...

    async def voluntary_exit_domain(self) -> DomainType:
        """Domain for voluntary exits."""
        ...

    async def selection_proof_domain(self) -> DomainType:
        """Domain for aggregator selection proofs."""
        ...

    async def aggregate_and_proof_domain(self) -> DomainType:
        """Domain for aggregate-and-proof messages."""
        ...


@runtime_checkable
class ValidatorsProvider(Protocol):
    """
    Provides validator registry entries from a beacon state.

    Not part of `BeaconNodeClient`: only backends whose node API exposes
    state queries implement it. Check with `isinstance` before use.
    """

    async def validators(
        self,
        state_id: str | int,
        validator_ids: Sequence[ValidatorID] | None = None,
    ) -> dict[ValidatorIndex, StateValidator]:
        """
        Validators in a state, keyed by registry index.

        Args:
            state_id: "head", "genesis", "finalized", "justified", a slot
                or a 0x-prefixed state root.
            validator_ids: Indices or public keys to restrict the result
                to. `None` returns the whole registry.
        """
        ...


@runtime_checkable
class BeaconChainHeadUpdatedSource(Protocol):
    """Delivers chain head updates to registered handlers."""

    def on_beacon_chain_head_updated(self, handler: BeaconChainHeadUpdatedHandler) -> None:
        """Register a handler for chain head updates."""
        ...


@runtime_checkable
class BeaconNodeClient(
    Service,
    GenesisTimeProvider,
    GenesisValidatorsRootProvider,
    SlotDurationProvider,
    SlotsPerEpochProvider,
    FarFutureEpochProvider,
    TargetAggregatorsPerCommitteeProvider,
    DomainProvider,
    BeaconChainHeadUpdatedSource,
    Protocol,
):
    """Everything a backend provides, plus lifecycle management."""

    async def close(self) -> None:
        """Release all resources. Safe to call more than once."""
        ...

    async def __aenter__(self) -> Self: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...
