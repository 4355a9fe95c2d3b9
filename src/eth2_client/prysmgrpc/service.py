"""
Prysm gRPC backend.

Talks to a Prysm beacon node over its `ethereum.eth.v1alpha1` gRPC API.

Prysm exposes its chain configuration as a single string map keyed by Go
field names (`DomainRandao`, `SlotsPerEpoch`, ...). Genesis information
comes from the node service.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any, Final, TypeVar

import grpc
from typing_extensions import Self

from eth2_client import metrics
from eth2_client.cache import ImmutableParameter, ParameterCache
from eth2_client.events import (
    BeaconChainHeadEvent,
    BeaconChainHeadUpdatedHandler,
    EventHandlerRegistry,
)
from eth2_client.exceptions import (
    Eth2ClientError,
    MissingKeyError,
    NodeConnectionError,
    UpstreamUnavailableError,
)
from eth2_client.lifecycle import ServiceLifecycle
from eth2_client.parameters import ServiceParameters, parse_and_check_parameters, service_logger
from eth2_client.parsing import (
    config_value,
    parse_domain,
    parse_positive_uint,
    parse_root,
    parse_uint,
)
from eth2_client.types import DomainType, Epoch, Root, Slot, Uint64

from . import messages

T = TypeVar("T")

NAME: Final = "Prysm (gRPC)"
"""Name reported by the service."""

IMPL: Final = "prysmgrpc"
"""Backend identifier used in logs and metrics."""

# Keys of the beacon config map.
SECONDS_PER_SLOT_KEY: Final = "SecondsPerSlot"
SLOTS_PER_EPOCH_KEY: Final = "SlotsPerEpoch"
FAR_FUTURE_EPOCH_KEY: Final = "FarFutureEpoch"
TARGET_AGGREGATORS_PER_COMMITTEE_KEY: Final = "TargetAggregatorsPerCommittee"

DOMAIN_KEYS: Final[dict[ImmutableParameter, str]] = {
    ImmutableParameter.BEACON_PROPOSER_DOMAIN: "DomainBeaconProposer",
    ImmutableParameter.BEACON_ATTESTER_DOMAIN: "DomainBeaconAttester",
    ImmutableParameter.RANDAO_DOMAIN: "DomainRandao",
    ImmutableParameter.DEPOSIT_DOMAIN: "DomainDeposit",
    ImmutableParameter.VOLUNTARY_EXIT_DOMAIN: "DomainVoluntaryExit",
    ImmutableParameter.SELECTION_PROOF_DOMAIN: "DomainSelectionProof",
    ImmutableParameter.AGGREGATE_AND_PROOF_DOMAIN: "DomainAggregateAndProof",
}
"""Config map key for each signature domain."""


class Service:
    """
    A beacon node client backed by Prysm's gRPC API.

    Construct with `new()`, which confirms the node is reachable first.
    """

    def __init__(
        self,
        channel: grpc.aio.Channel,
        parameters: ServiceParameters,
    ) -> None:
        self._channel = channel
        self._address = parameters.address
        self._timeout = parameters.timeout
        self._log = service_logger(IMPL, parameters.address, parameters.log_level)

        # Values from the node that never change once we have them.
        self._cache = ParameterCache(impl=IMPL, log=self._log)

        # Event handlers.
        self._head_handlers: EventHandlerRegistry[BeaconChainHeadUpdatedHandler] = (
            EventHandlerRegistry()
        )

        self._lifecycle = ServiceLifecycle(
            log=self._log,
            registries=(self._head_handlers,),
            close_transport=self._channel.close,
        )

        self._get_genesis = channel.unary_unary(
            messages.GET_GENESIS,
            request_serializer=messages.serialize,
            response_deserializer=messages.Genesis.FromString,
        )
        self._get_beacon_config = channel.unary_unary(
            messages.GET_BEACON_CONFIG,
            request_serializer=messages.serialize,
            response_deserializer=messages.BeaconConfig.FromString,
        )
        self._stream_chain_head = channel.unary_stream(
            messages.STREAM_CHAIN_HEAD,
            request_serializer=messages.serialize,
            response_deserializer=messages.ChainHead.FromString,
        )

    @property
    def name(self) -> str:
        """Name of the service."""
        return NAME

    @property
    def address(self) -> str:
        """Address of the node."""
        return self._address

    @property
    def timeout(self) -> float:
        """Per-request timeout in seconds."""
        return self._timeout

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _call(self, operation: str, method: Any) -> Any:
        """Issue one unary call bounded by the service timeout."""
        try:
            async with asyncio.timeout(self._timeout):
                return await method(messages.Empty(), timeout=self._timeout)
        except grpc.aio.AioRpcError as e:
            raise UpstreamUnavailableError(operation, f"{e.code().name}: {e.details()}") from e
        except TimeoutError as e:
            raise UpstreamUnavailableError(operation, f"timed out after {self._timeout}s") from e

    async def _config_value(self, key: str, parse: Callable[[Any], T]) -> T:
        """Fetch the beacon config and decode one entry of it."""
        response = await self._call("configuration", self._get_beacon_config)
        return config_value(response.config, key, parse)

    async def _fetch_genesis_time(self) -> datetime:
        genesis = await self._call("genesis", self._get_genesis)
        if not genesis.HasField("genesis_time"):
            raise MissingKeyError("genesis_time")
        timestamp = genesis.genesis_time
        return datetime.fromtimestamp(timestamp.seconds, tz=timezone.utc) + timedelta(
            microseconds=timestamp.nanos // 1000
        )

    async def _fetch_genesis_validators_root(self) -> Root:
        genesis = await self._call("genesis", self._get_genesis)
        # proto3 bytes default to empty when the node omits them.
        if not genesis.genesis_validators_root:
            raise MissingKeyError("genesis_validators_root")
        return config_value(
            {"genesis_validators_root": genesis.genesis_validators_root},
            "genesis_validators_root",
            parse_root,
        )

    async def _fetch_static_values(self) -> None:
        """
        Fetch values that never change, confirming the connection is good.

        Only genesis time is fetched eagerly. Everything else resolves on
        first use.
        """
        await self.genesis_time()

    # -------------------------------------------------------------------------
    # Immutable parameters
    # -------------------------------------------------------------------------

    async def genesis_time(self) -> datetime:
        """Provide the genesis time of the chain."""
        return await self._cache.resolve(
            ImmutableParameter.GENESIS_TIME, self._fetch_genesis_time
        )

    async def genesis_validators_root(self) -> Root:
        """Provide the genesis validators root of the chain."""
        return await self._cache.resolve(
            ImmutableParameter.GENESIS_VALIDATORS_ROOT, self._fetch_genesis_validators_root
        )

    async def slot_duration(self) -> timedelta:
        """Provide the duration of a slot."""

        async def fetch() -> timedelta:
            seconds = await self._config_value(SECONDS_PER_SLOT_KEY, parse_positive_uint)
            return timedelta(seconds=int(seconds))

        return await self._cache.resolve(ImmutableParameter.SLOT_DURATION, fetch)

    async def slots_per_epoch(self) -> Uint64:
        """Provide the number of slots in an epoch."""
        return await self._cache.resolve(
            ImmutableParameter.SLOTS_PER_EPOCH,
            lambda: self._config_value(SLOTS_PER_EPOCH_KEY, parse_positive_uint),
        )

    async def far_future_epoch(self) -> Epoch:
        """Provide the far future epoch marker."""

        async def fetch() -> Epoch:
            return Epoch(await self._config_value(FAR_FUTURE_EPOCH_KEY, parse_uint))

        return await self._cache.resolve(ImmutableParameter.FAR_FUTURE_EPOCH, fetch)

    async def target_aggregators_per_committee(self) -> Uint64:
        """Provide the target number of aggregators per committee."""
        return await self._cache.resolve(
            ImmutableParameter.TARGET_AGGREGATORS_PER_COMMITTEE,
            lambda: self._config_value(TARGET_AGGREGATORS_PER_COMMITTEE_KEY, parse_uint),
        )

    async def _domain(self, parameter: ImmutableParameter) -> DomainType:
        return await self._cache.resolve(
            parameter, lambda: self._config_value(DOMAIN_KEYS[parameter], parse_domain)
        )

    async def beacon_proposer_domain(self) -> DomainType:
        """Provide the beacon proposer domain."""
        return await self._domain(ImmutableParameter.BEACON_PROPOSER_DOMAIN)

    async def beacon_attester_domain(self) -> DomainType:
        """Provide the beacon attester domain."""
        return await self._domain(ImmutableParameter.BEACON_ATTESTER_DOMAIN)

    async def randao_domain(self) -> DomainType:
        """Provide the RANDAO domain."""
        return await self._domain(ImmutableParameter.RANDAO_DOMAIN)

    async def deposit_domain(self) -> DomainType:
        """Provide the deposit domain."""
        return await self._domain(ImmutableParameter.DEPOSIT_DOMAIN)

    async def voluntary_exit_domain(self) -> DomainType:
        """Provide the voluntary exit domain."""
        return await self._domain(ImmutableParameter.VOLUNTARY_EXIT_DOMAIN)

    async def selection_proof_domain(self) -> DomainType:
        """Provide the selection proof domain."""
        return await self._domain(ImmutableParameter.SELECTION_PROOF_DOMAIN)

    async def aggregate_and_proof_domain(self) -> DomainType:
        """Provide the aggregate and proof domain."""
        return await self._domain(ImmutableParameter.AGGREGATE_AND_PROOF_DOMAIN)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on_beacon_chain_head_updated(self, handler: BeaconChainHeadUpdatedHandler) -> None:
        """
        Register a handler for chain head updates.

        The first registration opens the chain head stream.
        """
        self._head_handlers.subscribe(handler)
        self._lifecycle.ensure_stream(self._stream_chain_heads)

    async def _stream_chain_heads(self) -> None:
        # Long-lived: no deadline on the stream itself.
        call = self._stream_chain_head(messages.Empty())
        async for head in call:
            event = await self._head_event(head)
            self._log.debug(f"Received chain head at slot {event.slot}")
            metrics.head_events.labels(impl=IMPL).inc()
            metrics.head_slot.labels(impl=IMPL).set(int(event.slot))
            await self._head_handlers.notify(
                lambda handler: handler.on_beacon_chain_head_updated(event)
            )

    async def _head_event(self, head: Any) -> BeaconChainHeadEvent:
        slots_per_epoch = await self.slots_per_epoch()
        slot = Slot(head.head_slot)
        return BeaconChainHeadEvent(
            slot=slot,
            block=Root(head.head_block_root),
            # Prysm's chain head carries no state root.
            state=None,
            epoch_transition=int(slot) % int(slots_per_epoch) == 0,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Free up any resources held. Safe to call more than once."""
        await self._lifecycle.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


async def new(
    *,
    address: str | None = None,
    timeout: float | timedelta | None = None,
    log_level: int | str | None = None,
    shutdown: asyncio.Event | None = None,
) -> Service:
    """
    Create a service connected to a Prysm node over gRPC.

    Args:
        address: host:port of the node's gRPC endpoint. Required.
        timeout: Per-request timeout. Must be positive.
        log_level: Level for this service's logger.
        shutdown: When set, the service closes itself.

    Raises:
        InvalidParametersError: If the parameters are invalid. No I/O is attempted.
        NodeConnectionError: If the node cannot be reached.
    """
    options = {"address": address, "timeout": timeout, "log_level": log_level}
    parameters = parse_and_check_parameters(**{k: v for k, v in options.items() if v is not None})

    channel = grpc.aio.insecure_channel(parameters.address)
    service = Service(channel, parameters)

    # Fetch static values to confirm the connection is good.
    try:
        await service._fetch_static_values()
    except Eth2ClientError as e:
        await service.close()
        raise NodeConnectionError(parameters.address, e.message) from e

    # Close the service on shutdown.
    if shutdown is not None:
        service._lifecycle.watch(shutdown)

    return service
