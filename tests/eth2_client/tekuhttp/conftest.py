"""An in-process Beacon API node served with aiohttp."""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import pytest
from aiohttp import web

GENESIS_TIME = 1606824023
"""Mainnet genesis, in seconds."""

GENESIS_VALIDATORS_ROOT = "0x4b363db94e286120d76eb905340fdd4e54bfe9f06bf33ff6cf5ad27f511bfe95"


def default_spec() -> dict[str, str]:
    """Spec configuration as the Beacon API renders it."""
    return {
        "SECONDS_PER_SLOT": "12",
        "SLOTS_PER_EPOCH": "32",
        "FAR_FUTURE_EPOCH": "18446744073709551615",
        "TARGET_AGGREGATORS_PER_COMMITTEE": "16",
        "DOMAIN_BEACON_PROPOSER": "0x00000000",
        "DOMAIN_BEACON_ATTESTER": "0x01000000",
        "DOMAIN_RANDAO": "0x02000000",
        "DOMAIN_DEPOSIT": "0x03000000",
        "DOMAIN_VOLUNTARY_EXIT": "0x04000000",
        "DOMAIN_SELECTION_PROOF": "0x05000000",
        "DOMAIN_AGGREGATE_AND_PROOF": "0x06000000",
    }


def validator_entry(index: int, *, status: str = "active_ongoing") -> dict[str, Any]:
    """Render one validator as the states endpoint returns it."""
    return {
        "index": str(index),
        "balance": "32000012345",
        "status": status,
        "validator": {
            "pubkey": "0x" + bytes([index % 256]).hex() * 48,
            "withdrawal_credentials": "0x00" + "11" * 31,
            "effective_balance": "32000000000",
            "slashed": False,
            "activation_eligibility_epoch": "0",
            "activation_epoch": "0",
            "exit_epoch": "18446744073709551615",
            "withdrawable_epoch": "18446744073709551615",
        },
    }


def head_event(slot: int, *, epoch_transition: bool = False, event: str = "head") -> str:
    """Render one `head` event as it appears on the wire."""
    payload = {
        "slot": str(slot),
        "block": "0x" + bytes([slot % 256]).hex() * 32,
        "state": "0x" + "ee" * 32,
        "epoch_transition": epoch_transition,
    }
    return f"event: {event}\ndata: {json.dumps(payload)}\n\n"


@dataclass
class FakeBeaconNode:
    """
    Scriptable node state.

    Tests edit the fields to change what the node answers.
    """

    spec: dict[str, str] = field(default_factory=default_spec)
    genesis: dict[str, str] = field(
        default_factory=lambda: {
            "genesis_time": str(GENESIS_TIME),
            "genesis_validators_root": GENESIS_VALIDATORS_ROOT,
            "genesis_fork_version": "0x00000000",
        }
    )

    validators: list[dict[str, Any]] = field(
        default_factory=lambda: [validator_entry(index) for index in range(4)]
    )
    """Registry returned for every state."""

    validator_queries: list[tuple[str, list[str]]] = field(default_factory=list)
    """State id and `id` values of each validators request."""

    calls: Counter[str] = field(default_factory=Counter)
    """Requests received, by path."""

    fail: set[str] = field(default_factory=set)
    """Paths that answer 503."""

    raw_bodies: dict[str, str] = field(default_factory=dict)
    """Paths that answer with a fixed body instead of JSON."""

    delay: float = 0.0
    """Seconds to wait before answering JSON requests."""

    events: asyncio.Queue[str] = field(default_factory=asyncio.Queue)
    """Raw event stream text to send to subscribers."""

    topics: list[str] = field(default_factory=list)
    """The `topics` query of each event stream request."""

    stop: asyncio.Event = field(default_factory=asyncio.Event)
    """Ends open event streams."""

    address: str = ""

    async def _answer(self, request: web.Request, data: Any) -> web.Response:
        path = request.path
        self.calls[path] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if path in self.fail:
            return web.Response(status=503, text="node is syncing")
        if path in self.raw_bodies:
            return web.Response(text=self.raw_bodies[path], content_type="application/json")
        return web.json_response({"data": data})

    async def handle_genesis(self, request: web.Request) -> web.Response:
        return await self._answer(request, self.genesis)

    async def handle_spec(self, request: web.Request) -> web.Response:
        return await self._answer(request, self.spec)

    async def handle_validators(self, request: web.Request) -> web.Response:
        ids = request.query.getall("id", [])
        self.validator_queries.append((request.match_info["state_id"], list(ids)))
        entries = [
            entry
            for entry in self.validators
            if not ids or entry["index"] in ids or entry["validator"]["pubkey"] in ids
        ]
        return await self._answer(request, entries)

    async def handle_events(self, request: web.Request) -> web.StreamResponse:
        self.calls[request.path] += 1
        self.topics.append(request.query.get("topics", ""))

        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        await response.write(b": connected\n\n")

        while not self.stop.is_set():
            try:
                text = await asyncio.wait_for(self.events.get(), timeout=0.05)
            except TimeoutError:
                continue
            await response.write(text.encode())
        return response

    def app(self) -> web.Application:
        app = web.Application()
        app.add_routes(
            [
                web.get("/eth/v1/beacon/genesis", self.handle_genesis),
                web.get("/eth/v1/config/spec", self.handle_spec),
                web.get(
                    "/eth/v1/beacon/states/{state_id}/validators", self.handle_validators
                ),
                web.get("/eth/v1/events", self.handle_events),
            ]
        )
        return app


@pytest.fixture
async def beacon_node() -> AsyncIterator[FakeBeaconNode]:
    """A fake Beacon API node listening on a free localhost port."""
    node = FakeBeaconNode()
    runner = web.AppRunner(node.app())
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]
    node.address = f"{host}:{port}"

    yield node

    node.stop.set()
    await runner.cleanup()
