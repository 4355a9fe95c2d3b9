"""
Server-Sent Events decoding.

The Beacon API event stream (`/eth/v1/events`) is a `text/event-stream`::

    event: head
    data: {"slot":"10", "block":"0x9a2f...", ...}

    event: head
    data: {"slot":"11", ...}

Each event is a block of `field: value` lines ended by a blank line.
Lines starting with ':' are comments (used by nodes as keep-alives).
Multiple `data` lines are joined with newlines.

References:
    - https://html.spec.whatwg.org/multipage/server-sent-events.html#event-stream-interpretation
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

DEFAULT_EVENT = "message"
"""Event type used when a block has no `event` field."""


@dataclass(frozen=True, slots=True)
class ServerSentEvent:
    """One dispatched event."""

    event: str
    """Event type (e.g. "head")."""

    data: str
    """Event payload."""

    id: str | None = None
    """Last event ID, if the server sent one."""


async def iter_sse(lines: AsyncIterable[str]) -> AsyncIterator[ServerSentEvent]:
    """
    Decode an event stream from its lines.

    Args:
        lines: Lines of the response body, without line terminators.

    Yields:
        Each complete event, in order. Blocks without data are dropped.
    """
    event = ""
    data: list[str] = []
    last_id: str | None = None

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        # Blank line: dispatch the accumulated event.
        if not line:
            if data:
                yield ServerSentEvent(event=event or DEFAULT_EVENT, data="\n".join(data), id=last_id)
            event = ""
            data = []
            continue

        if line.startswith(":"):
            continue

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        match name:
            case "event":
                event = value
            case "data":
                data.append(value)
            case "id":
                # IDs containing NULL are ignored.
                if "\0" not in value:
                    last_id = value
            case _:
                # Unknown fields (including "retry") are ignored.
                pass
