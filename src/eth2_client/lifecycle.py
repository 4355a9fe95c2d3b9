"""
Background task and shutdown management shared by all backends.

A service can be shut down three ways: the shutdown event passed at
construction is set, the caller leaves an `async with` block, or the
caller awaits `close()`. All three go through the same idempotent close.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from eth2_client.events import EventHandlerRegistry


@dataclass
class ServiceLifecycle:
    """
    Owns a service's background tasks and performs its shutdown.

    Composed into each backend service. The backend supplies the
    transport-specific close step.
    """

    log: logging.Logger | logging.LoggerAdapter[logging.Logger]
    """Logger of the owning service."""

    registries: tuple[EventHandlerRegistry[Any], ...]
    """Handler registries to empty on close."""

    close_transport: Callable[[], Awaitable[None]]
    """Releases the connection to the node."""

    _loop: asyncio.AbstractEventLoop = field(default_factory=asyncio.get_running_loop)
    """Event loop the service was created on."""

    _closed: bool = False
    """Set once close has started."""

    _watcher: asyncio.Task[None] | None = None
    """Task waiting on the shutdown signal."""

    _stream: asyncio.Task[None] | None = None
    """Task consuming the node's event stream."""

    _close_task: asyncio.Task[None] | None = None
    """The single shutdown run, shared by every close caller."""

    @property
    def closed(self) -> bool:
        """Whether the service has been closed."""
        return self._closed

    def watch(self, shutdown: asyncio.Event) -> None:
        """Close the service once `shutdown` is set."""
        self._watcher = self._loop.create_task(self._wait_shutdown(shutdown))

    async def _wait_shutdown(self, shutdown: asyncio.Event) -> None:
        await shutdown.wait()
        self.log.debug("Shutdown signalled; closing connection")
        # Close must not cancel the task that is running it.
        self._watcher = None
        await self.close()

    def ensure_stream(self, run: Callable[[], Awaitable[None]]) -> None:
        """
        Start the event stream unless it is already running.

        May be called from any thread. The task is always created on the
        service's own loop.
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._start_stream(run)
        else:
            self._loop.call_soon_threadsafe(self._start_stream, run)

    def _start_stream(self, run: Callable[[], Awaitable[None]]) -> None:
        if self._closed:
            return
        if self._stream is not None and not self._stream.done():
            return
        self._stream = self._loop.create_task(self._run_stream(run))

    async def _run_stream(self, run: Callable[[], Awaitable[None]]) -> None:
        self.log.debug("Starting event stream")
        try:
            await run()
        except Exception:
            # Ends the task. The next subscription starts a new stream.
            self.log.exception("Event stream failed")
        else:
            self.log.debug("Event stream ended")

    async def close(self) -> None:
        """
        Shut the service down.

        Idempotent, and not interrupted by cancellation of the caller.
        Errors while releasing the transport are logged and dropped.
        """
        if self._close_task is None:
            self._closed = True
            self._close_task = self._loop.create_task(self._close())
        await asyncio.shield(self._close_task)

    async def _close(self) -> None:
        for registry in self.registries:
            registry.clear()

        pending = [
            task
            for task in (self._stream, self._watcher)
            if task is not None and not task.done()
        ]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        try:
            await self.close_transport()
        except Exception as e:
            self.log.debug(f"Error while closing connection: {e}")

        self.log.debug("Connection closed")
