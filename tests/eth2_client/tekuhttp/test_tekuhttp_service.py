"""Tests for the Teku HTTP backend against an in-process node."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from eth2_client import tekuhttp
from eth2_client.events import BeaconChainHeadEvent
from eth2_client.exceptions import (
    ConfigFormatError,
    InvalidParametersError,
    MissingKeyError,
    NodeConnectionError,
    UpstreamUnavailableError,
)
from eth2_client.metrics import REGISTRY
from eth2_client.service import (
    BeaconChainHeadUpdatedSource,
    BeaconNodeClient,
    ValidatorsProvider,
)
from eth2_client.tekuhttp.service import base_url
from eth2_client.types import BLSPubkey, DomainType, Epoch, Root, Slot, Uint64, ValidatorIndex
from eth2_client.validators import ValidatorStatus

from .conftest import (
    GENESIS_TIME,
    GENESIS_VALIDATORS_ROOT,
    FakeBeaconNode,
    head_event,
    validator_entry,
)

SPEC = "/eth/v1/config/spec"
GENESIS = "/eth/v1/beacon/genesis"
VALIDATORS = "/eth/v1/beacon/states/head/validators"


class QueueHandler:
    """Collects head events into a queue."""

    def __init__(self) -> None:
        self.events: asyncio.Queue[BeaconChainHeadEvent] = asyncio.Queue()

    async def on_beacon_chain_head_updated(self, event: BeaconChainHeadEvent) -> None:
        await self.events.put(event)


class TestBaseUrl:
    """Tests for address normalisation."""

    def test_adds_scheme(self) -> None:
        """A bare host:port is served over plain HTTP."""
        assert base_url("localhost:5051") == "http://localhost:5051"

    def test_keeps_scheme(self) -> None:
        """Addresses with a scheme are used as given."""
        assert base_url("https://node.example:5051") == "https://node.example:5051"


class TestNew:
    """Tests for service construction."""

    @pytest.mark.anyio
    async def test_connects_and_prefetches_genesis(self, beacon_node: FakeBeaconNode) -> None:
        """Construction checks the node by fetching the genesis time."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            assert service.name == "Teku (HTTP)"
            assert beacon_node.calls[GENESIS] == 1
            assert beacon_node.calls[SPEC] == 0

            genesis = await service.genesis_time()

        assert genesis == datetime.fromtimestamp(GENESIS_TIME, tz=timezone.utc)
        assert beacon_node.calls[GENESIS] == 1

    @pytest.mark.anyio
    async def test_accepts_url(self, beacon_node: FakeBeaconNode) -> None:
        """A full URL works as the address."""
        address = f"http://{beacon_node.address}"
        async with await tekuhttp.new(address=address, timeout=5) as service:
            assert service.address == address

    @pytest.mark.anyio
    async def test_missing_address(self) -> None:
        """Omitting the address is rejected."""
        with pytest.raises(InvalidParametersError, match="address"):
            await tekuhttp.new()

    @pytest.mark.anyio
    async def test_negative_timeout(self, beacon_node: FakeBeaconNode) -> None:
        """A negative timeout is rejected before any request."""
        with pytest.raises(InvalidParametersError, match="timeout"):
            await tekuhttp.new(address=beacon_node.address, timeout=-1)

        assert sum(beacon_node.calls.values()) == 0

    @pytest.mark.anyio
    async def test_unreachable_node(self, unused_address: str) -> None:
        """A node that is not listening yields NodeConnectionError."""
        with pytest.raises(NodeConnectionError) as exc_info:
            await tekuhttp.new(address=unused_address, timeout=5)

        assert exc_info.value.address == unused_address

    @pytest.mark.anyio
    async def test_failing_node(self, beacon_node: FakeBeaconNode) -> None:
        """A node answering errors for genesis cannot be connected to."""
        beacon_node.fail.add(GENESIS)

        with pytest.raises(NodeConnectionError, match="HTTP 503"):
            await tekuhttp.new(address=beacon_node.address, timeout=5)

    @pytest.mark.anyio
    async def test_satisfies_client_protocols(self, beacon_node: FakeBeaconNode) -> None:
        """The service implements every provider interface."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            assert isinstance(service, BeaconNodeClient)
            assert isinstance(service, BeaconChainHeadUpdatedSource)

    @pytest.mark.anyio
    async def test_log_levels_are_per_service(self, beacon_node: FakeBeaconNode) -> None:
        """A second service's log level does not change the first one's."""
        async with await tekuhttp.new(
            address=beacon_node.address, timeout=5, log_level="debug"
        ) as verbose:
            async with await tekuhttp.new(
                address=beacon_node.address, timeout=5, log_level="error"
            ) as quiet:
                assert verbose._log.isEnabledFor(logging.DEBUG)
                assert not quiet._log.isEnabledFor(logging.INFO)


class TestImmutableParameters:
    """Tests for parameter retrieval and caching."""

    @pytest.mark.anyio
    async def test_values(self, beacon_node: FakeBeaconNode) -> None:
        """Every parameter decodes from the Beacon API encodings."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            assert await service.genesis_validators_root() == Root(GENESIS_VALIDATORS_ROOT)
            assert await service.slot_duration() == timedelta(seconds=12)
            assert await service.slots_per_epoch() == Uint64(32)
            assert await service.far_future_epoch() == Epoch(2**64 - 1)
            assert await service.target_aggregators_per_committee() == Uint64(16)
            assert await service.beacon_proposer_domain() == DomainType(b"\x00\x00\x00\x00")
            assert await service.beacon_attester_domain() == DomainType(b"\x01\x00\x00\x00")
            assert await service.randao_domain() == DomainType(b"\x02\x00\x00\x00")
            assert await service.deposit_domain() == DomainType(b"\x03\x00\x00\x00")
            assert await service.voluntary_exit_domain() == DomainType(b"\x04\x00\x00\x00")
            assert await service.selection_proof_domain() == DomainType(b"\x05\x00\x00\x00")
            assert await service.aggregate_and_proof_domain() == DomainType(b"\x06\x00\x00\x00")

    @pytest.mark.anyio
    async def test_randao_domain_fetched_once(self, beacon_node: FakeBeaconNode) -> None:
        """The RANDAO domain is requested from the node a single time."""
        beacon_node.spec["DOMAIN_RANDAO"] = "0x01000000"

        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            first = await service.randao_domain()
            second = await service.randao_domain()

        assert list(first) == [0x01, 0x00, 0x00, 0x00]
        assert first == second
        assert beacon_node.calls[SPEC] == 1

    @pytest.mark.anyio
    async def test_concurrent_calls_fetch_once(self, beacon_node: FakeBeaconNode) -> None:
        """Concurrent first calls share one request."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            beacon_node.delay = 0.05
            results = await asyncio.gather(*(service.slots_per_epoch() for _ in range(10)))

        assert set(results) == {32}
        assert beacon_node.calls[SPEC] == 1

    @pytest.mark.anyio
    async def test_failure_is_not_cached(self, beacon_node: FakeBeaconNode) -> None:
        """After an HTTP error the next call retries and succeeds."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            beacon_node.fail.add(SPEC)
            with pytest.raises(UpstreamUnavailableError, match="HTTP 503"):
                await service.deposit_domain()

            beacon_node.fail.clear()
            assert await service.deposit_domain() == DomainType(b"\x03\x00\x00\x00")

        assert beacon_node.calls[SPEC] == 2

    @pytest.mark.anyio
    async def test_cached_value_survives_node_failure(self, beacon_node: FakeBeaconNode) -> None:
        """Once cached, a value is served even when the node is failing."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            await service.slot_duration()
            beacon_node.fail.add(SPEC)

            assert await service.slot_duration() == timedelta(seconds=12)

    @pytest.mark.anyio
    async def test_missing_key(self, beacon_node: FakeBeaconNode) -> None:
        """A spec without the entry raises MissingKeyError."""
        del beacon_node.spec["TARGET_AGGREGATORS_PER_COMMITTEE"]

        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            with pytest.raises(MissingKeyError) as exc_info:
                await service.target_aggregators_per_committee()

        assert exc_info.value.key == "TARGET_AGGREGATORS_PER_COMMITTEE"

    @pytest.mark.anyio
    async def test_malformed_value(self, beacon_node: FakeBeaconNode) -> None:
        """A value that does not decode raises ConfigFormatError."""
        beacon_node.spec["DOMAIN_VOLUNTARY_EXIT"] = "0x040000"

        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            with pytest.raises(ConfigFormatError) as exc_info:
                await service.voluntary_exit_domain()

        assert exc_info.value.key == "DOMAIN_VOLUNTARY_EXIT"

    @pytest.mark.anyio
    async def test_non_json_body(self, beacon_node: FakeBeaconNode) -> None:
        """A body that is not JSON is an upstream failure."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            beacon_node.raw_bodies[SPEC] = "<html>proxy error</html>"
            with pytest.raises(UpstreamUnavailableError, match="not valid JSON"):
                await service.slots_per_epoch()

    @pytest.mark.anyio
    async def test_body_without_data(self, beacon_node: FakeBeaconNode) -> None:
        """A JSON body with no data object is reported as a missing key."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            beacon_node.raw_bodies[SPEC] = '{"code": 500}'
            with pytest.raises(MissingKeyError, match="data"):
                await service.slots_per_epoch()

    @pytest.mark.anyio
    async def test_timeout(self, beacon_node: FakeBeaconNode) -> None:
        """A node slower than the timeout yields UpstreamUnavailableError."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=0.2) as service:
            beacon_node.delay = 1.0
            with pytest.raises(UpstreamUnavailableError):
                await service.far_future_epoch()


class TestChainHeadEvents:
    """Tests for chain head streaming over Server-Sent Events."""

    @pytest.mark.anyio
    async def test_heads_are_delivered(self, beacon_node: FakeBeaconNode) -> None:
        """Head events reach the handler with their state root."""
        handler = QueueHandler()
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            service.on_beacon_chain_head_updated(handler)
            await beacon_node.events.put(head_event(95))
            await beacon_node.events.put(head_event(96, epoch_transition=True))

            first = await asyncio.wait_for(handler.events.get(), timeout=5)
            second = await asyncio.wait_for(handler.events.get(), timeout=5)

        assert first == BeaconChainHeadEvent(
            slot=Slot(95),
            block=Root(bytes([95]) * 32),
            state=Root(b"\xee" * 32),
            epoch_transition=False,
        )
        assert second.slot == 96
        assert second.epoch_transition
        assert beacon_node.topics == ["head"]

    @pytest.mark.anyio
    async def test_other_topics_and_bad_payloads_skipped(
        self, beacon_node: FakeBeaconNode
    ) -> None:
        """Events of other types and malformed payloads do not stop the stream."""
        handler = QueueHandler()
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            service.on_beacon_chain_head_updated(handler)
            await beacon_node.events.put(head_event(1, event="block"))
            await beacon_node.events.put('event: head\ndata: {"slot": "x"}\n\n')
            await beacon_node.events.put(head_event(2))

            event = await asyncio.wait_for(handler.events.get(), timeout=5)

        assert event.slot == 2
        assert handler.events.empty()

    @pytest.mark.anyio
    async def test_head_metrics(self, beacon_node: FakeBeaconNode) -> None:
        """The most recent head slot is exported."""
        handler = QueueHandler()
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            service.on_beacon_chain_head_updated(handler)
            await beacon_node.events.put(head_event(1234))
            await asyncio.wait_for(handler.events.get(), timeout=5)

        assert REGISTRY.get_sample_value("eth2_client_head_slot", {"impl": "tekuhttp"}) == 1234

    @pytest.mark.anyio
    async def test_close_clears_handlers(self, beacon_node: FakeBeaconNode) -> None:
        """After close no handler remains registered."""
        service = await tekuhttp.new(address=beacon_node.address, timeout=5)
        service.on_beacon_chain_head_updated(QueueHandler())

        await service.close()
        await service.close()

        assert len(service._head_handlers) == 0


class TestValidators:
    """Tests for validator queries against beacon states."""

    @pytest.mark.anyio
    async def test_whole_registry(self, beacon_node: FakeBeaconNode) -> None:
        """Without ids every validator of the state is returned by index."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            validators = await service.validators("genesis")

        assert sorted(validators) == [0, 1, 2, 3]
        assert all(isinstance(index, ValidatorIndex) for index in validators)
        assert validators[ValidatorIndex(2)].validator.pubkey == BLSPubkey(b"\x02" * 48)
        assert validators[ValidatorIndex(2)].status is ValidatorStatus.ACTIVE_ONGOING
        assert beacon_node.validator_queries == [("genesis", [])]

    @pytest.mark.anyio
    async def test_filtered_by_index_and_pubkey(self, beacon_node: FakeBeaconNode) -> None:
        """Requested ids are sent as repeated `id` query values."""
        pubkey = BLSPubkey(b"\x03" * 48)
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            validators = await service.validators(64, [1, pubkey])

        assert sorted(validators) == [1, 3]
        assert beacon_node.validator_queries == [("64", ["1", "0x" + "03" * 48])]

    @pytest.mark.anyio
    async def test_not_cached(self, beacon_node: FakeBeaconNode) -> None:
        """Each call queries the node, since the registry changes."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            await service.validators("head")
            beacon_node.validators.append(validator_entry(4, status="pending_queued"))
            validators = await service.validators("head")

        assert len(beacon_node.validator_queries) == 2
        assert validators[ValidatorIndex(4)].status is ValidatorStatus.PENDING_QUEUED

    @pytest.mark.anyio
    async def test_invalid_state_id_does_no_io(self, beacon_node: FakeBeaconNode) -> None:
        """A malformed state id fails before any request."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            with pytest.raises(InvalidParametersError):
                await service.validators("latest")

        assert beacon_node.validator_queries == []

    @pytest.mark.anyio
    async def test_malformed_entry(self, beacon_node: FakeBeaconNode) -> None:
        """An entry that does not decode raises ConfigFormatError naming it."""
        beacon_node.validators[1]["status"] = "sleeping"

        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            with pytest.raises(ConfigFormatError) as exc_info:
                await service.validators("head")

        assert exc_info.value.key == "validators[1]"

    @pytest.mark.anyio
    async def test_data_not_a_list(self, beacon_node: FakeBeaconNode) -> None:
        """A body whose data is not a list is reported as missing data."""
        beacon_node.raw_bodies[VALIDATORS] = '{"data": {"index": "0"}}'

        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            with pytest.raises(MissingKeyError):
                await service.validators("head")

    @pytest.mark.anyio
    async def test_node_failure(self, beacon_node: FakeBeaconNode) -> None:
        """A failing node yields UpstreamUnavailableError."""
        beacon_node.fail.add(VALIDATORS)

        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            with pytest.raises(UpstreamUnavailableError, match="HTTP 503"):
                await service.validators("head")

    @pytest.mark.anyio
    async def test_satisfies_validators_protocol(self, beacon_node: FakeBeaconNode) -> None:
        """The HTTP backend provides validator queries."""
        async with await tekuhttp.new(address=beacon_node.address, timeout=5) as service:
            assert isinstance(service, ValidatorsProvider)
