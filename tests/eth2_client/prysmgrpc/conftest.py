"""An in-process Prysm node speaking the v1alpha1 gRPC subset."""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import grpc
import pytest

from eth2_client.prysmgrpc import messages

GENESIS_TIME = 1606824023
"""Mainnet genesis, in seconds."""

GENESIS_VALIDATORS_ROOT = bytes.fromhex(
    "4b363db94e286120d76eb905340fdd4e54bfe9f06bf33ff6cf5ad27f511bfe95"
)


def default_config() -> dict[str, str]:
    """Beacon config as Prysm renders it, with Go-formatted byte arrays."""
    return {
        "SecondsPerSlot": "12",
        "SlotsPerEpoch": "32",
        "FarFutureEpoch": "18446744073709551615",
        "TargetAggregatorsPerCommittee": "16",
        "DomainBeaconProposer": "[0 0 0 0]",
        "DomainBeaconAttester": "[1 0 0 0]",
        "DomainRandao": "[2 0 0 0]",
        "DomainDeposit": "[3 0 0 0]",
        "DomainVoluntaryExit": "[4 0 0 0]",
        "DomainSelectionProof": "[5 0 0 0]",
        "DomainAggregateAndProof": "[6 0 0 0]",
    }


@dataclass
class FakePrysmNode:
    """
    Scriptable node state.

    Tests edit the fields to change what the node answers.
    """

    config: dict[str, str] = field(default_factory=default_config)
    genesis_time: int | None = GENESIS_TIME
    genesis_validators_root: bytes = GENESIS_VALIDATORS_ROOT

    calls: Counter[str] = field(default_factory=Counter)
    """Requests received, by method name."""

    fail: set[str] = field(default_factory=set)
    """Method names that answer UNAVAILABLE."""

    delay: float = 0.0
    """Seconds to wait before answering unary calls."""

    heads: asyncio.Queue[tuple[int, bytes]] = field(default_factory=asyncio.Queue)
    """Chain heads to stream, as (slot, block root)."""

    address: str = ""

    async def _answer(self, method: str, context: Any) -> None:
        self.calls[method] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if method in self.fail:
            await context.abort(grpc.StatusCode.UNAVAILABLE, "node is syncing")

    async def get_genesis(self, request: Any, context: Any) -> Any:
        await self._answer("GetGenesis", context)
        response = messages.Genesis(genesis_validators_root=self.genesis_validators_root)
        if self.genesis_time is not None:
            response.genesis_time.seconds = self.genesis_time
        return response

    async def get_beacon_config(self, request: Any, context: Any) -> Any:
        await self._answer("GetBeaconConfig", context)
        return messages.BeaconConfig(config=self.config)

    async def stream_chain_head(self, request: Any, context: Any) -> AsyncIterator[Any]:
        self.calls["StreamChainHead"] += 1
        while True:
            slot, root = await self.heads.get()
            yield messages.ChainHead(
                head_slot=slot,
                head_epoch=slot // 32,
                head_block_root=root,
            )

    def handlers(self) -> tuple[grpc.GenericRpcHandler, ...]:
        def unary(handler: Any) -> grpc.RpcMethodHandler:
            return grpc.unary_unary_rpc_method_handler(
                handler,
                request_deserializer=messages.Empty.FromString,
                response_serializer=messages.serialize,
            )

        node_service = grpc.method_handlers_generic_handler(
            f"{messages.PACKAGE}.Node",
            {"GetGenesis": unary(self.get_genesis)},
        )
        chain_service = grpc.method_handlers_generic_handler(
            f"{messages.PACKAGE}.BeaconChain",
            {
                "GetBeaconConfig": unary(self.get_beacon_config),
                "StreamChainHead": grpc.unary_stream_rpc_method_handler(
                    self.stream_chain_head,
                    request_deserializer=messages.Empty.FromString,
                    response_serializer=messages.serialize,
                ),
            },
        )
        return (node_service, chain_service)


@pytest.fixture
async def prysm_node() -> AsyncIterator[FakePrysmNode]:
    """A fake Prysm node listening on a free localhost port."""
    node = FakePrysmNode()
    server = grpc.aio.server()
    server.add_generic_rpc_handlers(node.handlers())
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()
    node.address = f"127.0.0.1:{port}"

    yield node

    await server.stop(None)
