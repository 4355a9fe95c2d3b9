"""
Prometheus instruments for the client.

Tracks how often each backend goes to its node for immutable parameters.
Every parameter should be fetched once per service, so a fetch counter
that keeps growing points to a node that keeps failing.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

# Kept apart from the default registry so process collectors are not exported.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Immutable Parameter Cache
# -----------------------------------------------------------------------------

parameter_fetches = Counter(
    "eth2_client_parameter_fetches_total",
    "Upstream fetches issued for immutable parameters",
    ["impl", "parameter"],
    registry=REGISTRY,
)

parameter_fetch_failures = Counter(
    "eth2_client_parameter_fetch_failures_total",
    "Upstream fetches for immutable parameters that failed",
    ["impl", "parameter"],
    registry=REGISTRY,
)

parameter_cache_hits = Counter(
    "eth2_client_parameter_cache_hits_total",
    "Immutable parameter reads served from the cache",
    ["impl", "parameter"],
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------

head_events = Counter(
    "eth2_client_head_events_total",
    "Chain head events received from the node",
    ["impl"],
    registry=REGISTRY,
)

head_slot = Gauge(
    "eth2_client_head_slot",
    "Slot of the most recent chain head event",
    ["impl"],
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """Render every client metric in the Prometheus text format."""
    return generate_latest(REGISTRY)
