"""
Teku HTTP backend.

Talks to a Teku beacon node (or any node serving the standard Beacon API)
over HTTP. Chain constants come from `/eth/v1/config/spec`, keyed by the
upper-snake names used in the consensus presets (`DOMAIN_RANDAO`, ...).
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any, Final, TypeVar

import httpx
from pydantic import ValidationError
from typing_extensions import Self

from eth2_client import metrics
from eth2_client.cache import ImmutableParameter, ParameterCache
from eth2_client.events import (
    BeaconChainHeadEvent,
    BeaconChainHeadUpdatedHandler,
    EventHandlerRegistry,
)
from eth2_client.exceptions import (
    ConfigFormatError,
    Eth2ClientError,
    InvalidParametersError,
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
from eth2_client.types import (
    DomainType,
    Epoch,
    NodeResponseModel,
    Root,
    Slot,
    Uint64,
    ValidatorIndex,
)
from eth2_client.validators import (
    StateValidator,
    ValidatorID,
    state_path_segment,
    validator_query,
)

from .sse import iter_sse

T = TypeVar("T")

NAME: Final = "Teku (HTTP)"
"""Name reported by the service."""

IMPL: Final = "tekuhttp"
"""Backend identifier used in logs and metrics."""

GENESIS_ENDPOINT: Final = "/eth/v1/beacon/genesis"
"""Genesis time and validators root."""

SPEC_ENDPOINT: Final = "/eth/v1/config/spec"
"""Chain configuration constants."""

VALIDATORS_ENDPOINT: Final = "/eth/v1/beacon/states/{state_id}/validators"
"""Validator registry of a state."""

EVENTS_ENDPOINT: Final = "/eth/v1/events"
"""Server-Sent Events stream."""

HEAD_TOPIC: Final = "head"
"""Event topic for chain head updates."""

MAX_CONNECTIONS: Final = 16
"""Connection pool size."""

KEEPALIVE_EXPIRY: Final = 384.0
"""Seconds an idle pooled connection is kept open."""

# Keys of the /eth/v1/config/spec response.
SECONDS_PER_SLOT_KEY: Final = "SECONDS_PER_SLOT"
SLOTS_PER_EPOCH_KEY: Final = "SLOTS_PER_EPOCH"
FAR_FUTURE_EPOCH_KEY: Final = "FAR_FUTURE_EPOCH"
TARGET_AGGREGATORS_PER_COMMITTEE_KEY: Final = "TARGET_AGGREGATORS_PER_COMMITTEE"

DOMAIN_KEYS: Final[dict[ImmutableParameter, str]] = {
    ImmutableParameter.BEACON_PROPOSER_DOMAIN: "DOMAIN_BEACON_PROPOSER",
    ImmutableParameter.BEACON_ATTESTER_DOMAIN: "DOMAIN_BEACON_ATTESTER",
    ImmutableParameter.RANDAO_DOMAIN: "DOMAIN_RANDAO",
    ImmutableParameter.DEPOSIT_DOMAIN: "DOMAIN_DEPOSIT",
    ImmutableParameter.VOLUNTARY_EXIT_DOMAIN: "DOMAIN_VOLUNTARY_EXIT",
    ImmutableParameter.SELECTION_PROOF_DOMAIN: "DOMAIN_SELECTION_PROOF",
    ImmutableParameter.AGGREGATE_AND_PROOF_DOMAIN: "DOMAIN_AGGREGATE_AND_PROOF",
}
"""Chain configuration key for each signature domain."""


class HeadEventPayload(NodeResponseModel):
    """Body of a `head` event."""

    slot: Slot
    block: Root
    state: Root
    epoch_transition: bool


def base_url(address: str) -> str:
    """Prefix an address with a scheme if it has none."""
    if not address.startswith("http"):
        return f"http://{address}"
    return address


class Service:
    """
    A beacon node client backed by the Beacon API over HTTP.

    Construct with `new()`, which confirms the node is reachable first.
    """

    def __init__(self, client: httpx.AsyncClient, parameters: ServiceParameters) -> None:
        self._client = client
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
            close_transport=self._client.aclose,
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

    async def _get(
        self, operation: str, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        """
        GET a Beacon API endpoint and return the `data` member of its body.

        Raises:
            UpstreamUnavailableError: On network failure, timeout, a non-2xx
                status or a body that is not JSON.
            MissingKeyError: If the body has no `data` member.
        """
        try:
            async with asyncio.timeout(self._timeout):
                response = await self._client.get(
                    path, params=params, headers={"Accept": "application/json"}
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailableError(
                operation, f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(operation, f"{type(e).__name__}: {e}") from e
        except TimeoutError as e:
            raise UpstreamUnavailableError(operation, f"timed out after {self._timeout}s") from e

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamUnavailableError(operation, "response is not valid JSON") from e

        if not isinstance(body, dict) or "data" not in body:
            raise MissingKeyError("data")
        return body["data"]

    async def _get_data(self, operation: str, path: str) -> dict[str, Any]:
        """GET an endpoint whose `data` is a single object."""
        data = await self._get(operation, path)
        if not isinstance(data, dict):
            raise MissingKeyError("data")
        return data

    async def _config_value(self, key: str, parse: Callable[[Any], T]) -> T:
        """Fetch the chain configuration and decode one entry of it."""
        spec = await self._get_data("configuration", SPEC_ENDPOINT)
        return config_value(spec, key, parse)

    async def _fetch_genesis_time(self) -> datetime:
        genesis = await self._get_data("genesis", GENESIS_ENDPOINT)
        seconds = config_value(genesis, "genesis_time", parse_uint)
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc)

    async def _fetch_genesis_validators_root(self) -> Root:
        genesis = await self._get_data("genesis", GENESIS_ENDPOINT)
        return config_value(genesis, "genesis_validators_root", parse_root)

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
    # State queries
    # -------------------------------------------------------------------------

    async def validators(
        self,
        state_id: str | int,
        validator_ids: Sequence[ValidatorID] | None = None,
    ) -> dict[ValidatorIndex, StateValidator]:
        """
        Provide validators in a state, keyed by registry index.

        Nothing is cached: the registry differs between states.

        Raises:
            InvalidParametersError: If an identifier is malformed. No I/O is
                attempted.
            UpstreamUnavailableError: If the request fails.
            MissingKeyError: If the response has no validator list.
            ConfigFormatError: If an entry cannot be decoded.
        """
        path = VALIDATORS_ENDPOINT.format(state_id=state_path_segment(state_id))
        ids = validator_query(validator_ids)

        data = await self._get("validators", path, params={"id": ids} if ids else None)
        if not isinstance(data, list):
            raise MissingKeyError("data")

        validators: dict[ValidatorIndex, StateValidator] = {}
        for position, entry in enumerate(data):
            try:
                validator = StateValidator.model_validate(entry)
            except ValidationError as e:
                raise ConfigFormatError(f"validators[{position}]", entry) from e
            validators[validator.index] = validator
        self._log.debug(f"Fetched {len(validators)} validators at state {state_id}")
        return validators

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on_beacon_chain_head_updated(self, handler: BeaconChainHeadUpdatedHandler) -> None:
        """
        Register a handler for chain head updates.

        The first registration opens the event stream.
        """
        self._head_handlers.subscribe(handler)
        self._lifecycle.ensure_stream(self._stream_heads)

    async def _stream_heads(self) -> None:
        # The stream stays open indefinitely, so only connecting is bounded.
        timeout = httpx.Timeout(self._timeout, read=None)
        async with self._client.stream(
            "GET",
            EVENTS_ENDPOINT,
            params={"topics": HEAD_TOPIC},
            headers={"Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            response.raise_for_status()
            async for message in iter_sse(response.aiter_lines()):
                if message.event != HEAD_TOPIC:
                    continue
                try:
                    payload = HeadEventPayload.model_validate_json(message.data)
                except ValidationError as e:
                    self._log.warning(f"Ignoring malformed head event: {e}")
                    continue

                event = BeaconChainHeadEvent(
                    slot=payload.slot,
                    block=payload.block,
                    state=payload.state,
                    epoch_transition=payload.epoch_transition,
                )
                self._log.debug(f"Received chain head at slot {event.slot}")
                metrics.head_events.labels(impl=IMPL).inc()
                metrics.head_slot.labels(impl=IMPL).set(int(event.slot))
                await self._head_handlers.notify(
                    lambda handler: handler.on_beacon_chain_head_updated(event)
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
    Create a service connected to a Beacon API node over HTTP.

    Args:
        address: URL or host:port of the node. `http://` is assumed when no
            scheme is given. Required.
        timeout: Per-request timeout. Must be positive.
        log_level: Level for this service's logger.
        shutdown: When set, the service closes itself.

    Raises:
        InvalidParametersError: If the parameters are invalid. No I/O is attempted.
        NodeConnectionError: If the node cannot be reached.
    """
    options = {"address": address, "timeout": timeout, "log_level": log_level}
    parameters = parse_and_check_parameters(**{k: v for k, v in options.items() if v is not None})

    try:
        url = httpx.URL(base_url(parameters.address))
    except httpx.InvalidURL as e:
        raise InvalidParametersError(f"invalid URL {parameters.address!r}: {e}") from e

    client = httpx.AsyncClient(
        base_url=url,
        timeout=httpx.Timeout(parameters.timeout),
        limits=httpx.Limits(
            max_connections=MAX_CONNECTIONS,
            max_keepalive_connections=MAX_CONNECTIONS,
            keepalive_expiry=KEEPALIVE_EXPIRY,
        ),
    )
    service = Service(client, parameters)

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
