"""Event sinks carrying run events from the host to a UI panel.

A sink is anything with an ``async send(event)`` method.  The runner does not
care where events go: the WebSocket panel channel, an in‑process queue, or
nowhere at all when a caller only wants the final outcome.

Emission is best effort.  A missing sink is a no‑op and a sink that raises
(for example because the panel was closed mid‑run) is logged; the run itself
always continues to completion and cleanup.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol

from .models import Event

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    async def send(self, event: Event) -> None:
        ...


async def emit(sink: Optional[EventSink], event: Event) -> None:
    if sink is None:
        return
    try:
        await sink.send(event)
    except Exception as exc:
        logger.warning(
            "Dropping %s event for request %s: %s", getattr(event, "kind", "unknown"), event.request_id, exc
        )


class TaggedSink:
    """Stamp the correlation id and cell index on every event."""

    def __init__(self, inner: Optional[EventSink], request_id: Optional[str], index: Optional[str] = None) -> None:
        self.inner = inner
        self.request_id = request_id
        self.index = index

    async def send(self, event: Event) -> None:
        if self.inner is None:
            return
        update = {}
        if event.request_id is None:
            update["request_id"] = self.request_id
        if event.index is None and self.index is not None:
            update["index"] = self.index
        await self.inner.send(event.model_copy(update=update) if update else event)


class CollectingSink:
    """Keep every event in order.  Handy for batch callers and tests."""

    def __init__(self) -> None:
        self.events: List[Event] = []

    async def send(self, event: Event) -> None:
        self.events.append(event)

    def messages(self) -> List[dict[str, Any]]:
        return [event.to_message() for event in self.events]


class QueueSink:
    """Push events onto an :class:`asyncio.Queue` for an in‑process consumer."""

    def __init__(self, queue: Optional[asyncio.Queue] = None) -> None:
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    async def send(self, event: Event) -> None:
        await self.queue.put(event)


class WebSocketSink:
    """Serialise events onto a FastAPI/Starlette WebSocket.

    Several runs may share one panel channel, so writes go through a lock to
    keep frames from different runs whole.
    """

    def __init__(self, websocket: Any) -> None:
        self.websocket = websocket
        self._lock = asyncio.Lock()

    async def send(self, event: Event) -> None:
        async with self._lock:
            await self.websocket.send_json(event.to_message())
