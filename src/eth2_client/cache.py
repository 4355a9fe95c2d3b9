"""
Lazy, fetch-once caching of immutable chain parameters.

A chain constant such as the RANDAO domain is fixed at genesis. It is read
on every signing-root computation but only ever needs to be fetched once.
Each service owns a `ParameterCache` holding one `CacheSlot` per parameter.

Slot Lifecycle
--------------
::

    Empty --(fetch succeeds)--> Populated
      ^          |
      +--(fetch fails)

The transition to Populated is one-way. A failed fetch leaves the slot Empty,
so the next caller tries again. Errors are never cached.

Concurrency
-----------
Reads of a populated slot take no lock. Publishing the value is a single
attribute assignment, so a reader sees either nothing or the complete value.

Fetches are serialized per slot by an `asyncio.Lock`. Callers that queue up
behind an in-flight fetch re-check the slot once they hold the lock. If the
fetch succeeded they return the stored value without going upstream. This
guarantees at most one successful upstream request per parameter.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from eth2_client import metrics

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ImmutableParameter(Enum):
    """Chain parameters that cannot change after genesis."""

    GENESIS_TIME = "genesis time"
    GENESIS_VALIDATORS_ROOT = "genesis validators root"
    SLOT_DURATION = "slot duration"
    SLOTS_PER_EPOCH = "slots per epoch"
    FAR_FUTURE_EPOCH = "far future epoch"
    TARGET_AGGREGATORS_PER_COMMITTEE = "target aggregators per committee"
    BEACON_PROPOSER_DOMAIN = "beacon proposer domain"
    BEACON_ATTESTER_DOMAIN = "beacon attester domain"
    RANDAO_DOMAIN = "RANDAO domain"
    DEPOSIT_DOMAIN = "deposit domain"
    VOLUNTARY_EXIT_DOMAIN = "voluntary exit domain"
    SELECTION_PROOF_DOMAIN = "selection proof domain"
    AGGREGATE_AND_PROOF_DOMAIN = "aggregate and proof domain"


class _Empty:
    """Marker for a slot that holds no value yet."""

    def __repr__(self) -> str:
        return "<empty>"


_EMPTY: Any = _Empty()


@dataclass(slots=True)
class CacheSlot(Generic[T]):
    """
    A single write-once value.

    The value is produced by the fetch coroutine passed to `resolve`.
    """

    _value: T = field(default=_EMPTY)
    """The cached value, or the empty marker."""

    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    """Serializes fetches for this slot."""

    @property
    def is_populated(self) -> bool:
        """Whether a value has been stored."""
        return self._value is not _EMPTY

    @property
    def value(self) -> T:
        """
        The stored value.

        Raises:
            LookupError: If the slot is still empty.
        """
        value = self._value
        if value is _EMPTY:
            raise LookupError("cache slot is empty")
        return value

    async def resolve(self, fetch: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """
        Return the cached value, fetching it first if needed.

        Args:
            fetch: Coroutine factory that obtains and parses the value.
                Called at most once per successful population.

        Returns:
            The value and whether `fetch` was invoked by this call.

        Raises:
            Whatever `fetch` raises. The slot stays empty in that case.
        """
        # Fast path: no lock once populated.
        value = self._value
        if value is not _EMPTY:
            return value, False

        async with self._lock:
            # Another caller may have populated the slot while we waited.
            value = self._value
            if value is not _EMPTY:
                return value, False

            value = await fetch()
            self._value = value
            return value, True


@dataclass(slots=True)
class ParameterCache:
    """
    All immutable parameter slots owned by one service instance.

    Shared by every backend through composition. Each backend supplies only
    the transport-specific fetch for a parameter.
    """

    impl: str
    """Backend identifier, used to label metrics."""

    log: logging.Logger | logging.LoggerAdapter[logging.Logger] = logger
    """Logger of the owning service."""

    _slots: dict[ImmutableParameter, CacheSlot[Any]] = field(default_factory=dict)
    """Slots by parameter, created on first use."""

    def _slot(self, parameter: ImmutableParameter) -> CacheSlot[Any]:
        # No await between lookup and insert, so this cannot race on one loop.
        slot = self._slots.get(parameter)
        if slot is None:
            slot = CacheSlot()
            self._slots[parameter] = slot
        return slot

    async def resolve(
        self, parameter: ImmutableParameter, fetch: Callable[[], Awaitable[T]]
    ) -> T:
        """
        Resolve a parameter, going upstream only if it is not cached.

        Args:
            parameter: The parameter to resolve.
            fetch: Transport-specific coroutine factory for the parameter.

        Returns:
            The parameter value.
        """
        labels = {"impl": self.impl, "parameter": parameter.name.lower()}

        async def counted_fetch() -> T:
            self.log.debug(f"Fetching {parameter.value} from node")
            metrics.parameter_fetches.labels(**labels).inc()
            try:
                value = await fetch()
            except Exception:
                metrics.parameter_fetch_failures.labels(**labels).inc()
                raise
            self.log.debug(f"Cached {parameter.value}: {value!r}")
            return value

        value, fetched = await self._slot(parameter).resolve(counted_fetch)
        if not fetched:
            metrics.parameter_cache_hits.labels(**labels).inc()
        return value

    def is_cached(self, parameter: ImmutableParameter) -> bool:
        """Whether a parameter has been resolved."""
        slot = self._slots.get(parameter)
        return slot is not None and slot.is_populated

    def cached(self, parameter: ImmutableParameter) -> Any:
        """
        Return a resolved parameter without any I/O.

        Raises:
            LookupError: If the parameter has not been resolved yet.
        """
        slot = self._slots.get(parameter)
        if slot is None:
            raise LookupError(f"{parameter.value} has not been resolved")
        return slot.value
