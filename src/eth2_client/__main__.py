"""
Beacon node inspection CLI.

Connect to a node, print the chain parameters that never change, and
optionally follow chain head updates.

Usage::

    python -m eth2_client --implementation tekuhttp --address localhost:5051
    python -m eth2_client --implementation prysmgrpc --address localhost:4000 --follow-heads

Options:
    --implementation  Backend to use: prysmgrpc or tekuhttp (required)
    --address         Node address (required)
    --timeout         Per-request timeout in seconds
    --log-level       Log level name (default: ETH2_CLIENT_LOG_LEVEL or info)
    --follow-heads    Log chain head updates until interrupted
    --metrics         Print client metrics before exiting
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable

from eth2_client import prysmgrpc, tekuhttp
from eth2_client.config import DEFAULT_LOG_LEVEL_NAME, DEFAULT_TIMEOUT
from eth2_client.events import BeaconChainHeadEvent
from eth2_client.exceptions import Eth2ClientError
from eth2_client.metrics import generate_metrics
from eth2_client.service import BeaconNodeClient

logger = logging.getLogger(__name__)

IMPLEMENTATIONS: dict[str, Callable[..., Awaitable[BeaconNodeClient]]] = {
    "prysmgrpc": prysmgrpc.new,
    "tekuhttp": tekuhttp.new,
}
"""Backend constructors by name."""


class HeadLogger:
    """Logs every chain head update."""

    async def on_beacon_chain_head_updated(self, event: BeaconChainHeadEvent) -> None:
        """Log the new head."""
        marker = " (epoch transition)" if event.epoch_transition else ""
        logger.info(f"Head updated: slot={event.slot} block=0x{event.block.hex()}{marker}")


def setup_logging() -> None:
    """Send log records to stderr."""
    # No level on the handler: service loggers carry their own from --log-level.
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(handler)


async def describe(client: BeaconNodeClient) -> list[tuple[str, str]]:
    """
    Resolve every immutable parameter of a node.

    Returns:
        (label, value) pairs in display order.
    """
    genesis_time = await client.genesis_time()
    rows = [
        ("Name", client.name),
        ("Address", client.address),
        ("Genesis time", genesis_time.isoformat()),
        ("Genesis validators root", "0x" + (await client.genesis_validators_root()).hex()),
        ("Slot duration", str(await client.slot_duration())),
        ("Slots per epoch", str(await client.slots_per_epoch())),
        ("Far future epoch", str(await client.far_future_epoch())),
        ("Target aggregators per committee", str(await client.target_aggregators_per_committee())),
    ]
    domains = [
        ("Beacon proposer domain", client.beacon_proposer_domain),
        ("Beacon attester domain", client.beacon_attester_domain),
        ("RANDAO domain", client.randao_domain),
        ("Deposit domain", client.deposit_domain),
        ("Voluntary exit domain", client.voluntary_exit_domain),
        ("Selection proof domain", client.selection_proof_domain),
        ("Aggregate and proof domain", client.aggregate_and_proof_domain),
    ]
    for label, resolve in domains:
        rows.append((label, "0x" + (await resolve()).hex()))
    return rows


async def run(args: argparse.Namespace) -> int:
    """Connect, report and optionally follow heads. Returns an exit code."""
    shutdown = asyncio.Event()

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown.set)
    except (ValueError, RuntimeError, NotImplementedError):
        # Cannot add handlers outside main thread or on this platform.
        pass

    try:
        client = await IMPLEMENTATIONS[args.implementation](
            address=args.address,
            timeout=args.timeout,
            log_level=args.log_level,
            shutdown=shutdown,
        )
    except Eth2ClientError as e:
        logger.error(str(e))
        return 1

    async with client:
        try:
            rows = await describe(client)
        except Eth2ClientError as e:
            logger.error(str(e))
            return 1

        width = max(len(label) for label, _ in rows)
        for label, value in rows:
            print(f"{label:<{width}}  {value}")

        if args.follow_heads:
            client.on_beacon_chain_head_updated(HeadLogger())
            await shutdown.wait()

    if args.metrics:
        print(generate_metrics().decode(), end="")

    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser. Defaults come from the environment."""
    parser = argparse.ArgumentParser(
        prog="eth2_client",
        description="Inspect the immutable chain parameters of a beacon node.",
    )
    parser.add_argument(
        "--implementation",
        required=True,
        choices=sorted(IMPLEMENTATIONS),
        help="Backend to connect with",
    )
    parser.add_argument("--address", required=True, help="Node address")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"Per-request timeout in seconds (default: {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "--log-level",
        default=DEFAULT_LOG_LEVEL_NAME,
        help=f"Log level name (default: {DEFAULT_LOG_LEVEL_NAME})",
    )
    parser.add_argument(
        "--follow-heads",
        action="store_true",
        help="Log chain head updates until interrupted",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Print client metrics in Prometheus text format before exiting",
    )
    return parser


def main() -> int:
    """CLI entry point."""
    args = build_parser().parse_args()

    setup_logging()

    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
