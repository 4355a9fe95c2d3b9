"""
Node event types and the handler registry.

Event Flow
----------
Events travel in the opposite direction to parameter requests::

    Node
      |
    Transport stream (gRPC server stream / Server-Sent Events)
      |
    Backend service (decodes into BeaconChainHeadEvent)
      |
    EventHandlerRegistry.notify
      |
      +-- handler 1
      +-- handler 2

The registry owns the subscription entries only. Handlers own whatever
state their callbacks close over.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from threading import Lock
from typing import Generic, Protocol, TypeVar, runtime_checkable

from eth2_client.types import Root, Slot

logger = logging.getLogger(__name__)

H = TypeVar("H")


@dataclass(frozen=True, slots=True)
class BeaconChainHeadEvent:
    """
    The node's view of the chain head changed.

    Fired once per head update received from the node.
    """

    slot: Slot
    """Slot of the new head block."""

    block: Root
    """Root of the new head block."""

    state: Root | None
    """State root of the new head, when the transport provides it."""

    epoch_transition: bool
    """True if the new head is the first slot of an epoch."""


@runtime_checkable
class BeaconChainHeadUpdatedHandler(Protocol):
    """Receives chain head notifications."""

    async def on_beacon_chain_head_updated(self, event: BeaconChainHeadEvent) -> None:
        """Called once for every head update."""
        ...


@dataclass
class EventHandlerRegistry(Generic[H]):
    """
    Ordered collection of event handlers.

    Thread-safe: subscriptions may come from any thread, while deliveries
    run on the service's event loop. Delivery iterates a snapshot taken
    under the lock, so a handler that subscribes or a concurrent clear
    never disturbs an in-progress delivery.
    """

    _handlers: list[H] = field(default_factory=list)
    """Registered handlers in subscription order."""

    _lock: Lock = field(default_factory=Lock)
    """Guards `_handlers`."""

    def subscribe(self, handler: H) -> None:
        """
        Append a handler.

        Handlers are not deduplicated: subscribing twice delivers twice.
        """
        with self._lock:
            self._handlers.append(handler)

    def snapshot(self) -> tuple[H, ...]:
        """Return the current handlers."""
        with self._lock:
            return tuple(self._handlers)

    def clear(self) -> None:
        """Remove every handler."""
        with self._lock:
            self._handlers = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    async def notify(self, deliver: Callable[[H], Awaitable[None]]) -> None:
        """
        Deliver an event to every current handler, in order.

        A handler that raises is logged and skipped. Remaining handlers
        still receive the event and the registry is left unchanged.

        Args:
            deliver: Invokes the event callback on one handler.
        """
        for handler in self.snapshot():
            try:
                await deliver(handler)
            except Exception:
                logger.exception(f"Event handler {handler!r} failed")
