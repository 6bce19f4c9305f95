"""
Bounded event channel between the core and its host.

The core publishes synchronously and never blocks; the host drains at its own
pace with ``await channel.get()`` or ``async for event in channel``.  When the
host falls behind by ``maxsize`` events the oldest queued event is discarded
and counted in ``dropped``.  ``close()`` ends iteration once the queue has
been drained.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from canvasai.session.events import AIEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class EventChannel:
    def __init__(self, maxsize: int = 256) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        # Unbounded underneath; the cap is enforced in publish() so the close
        # marker always fits.
        self._queue: asyncio.Queue = asyncio.Queue()
        self._size = 0
        self._closed = False
        self.dropped = 0

    def publish(self, event: AIEvent) -> None:
        if self._closed:
            logger.debug("Dropping %s published after close", event.type.value)
            return
        if self._size >= self.maxsize:
            self._queue.get_nowait()
            self._size -= 1
            self.dropped += 1
        self._queue.put_nowait(event)
        self._size += 1

    async def get(self) -> AIEvent | None:
        """Next event, or ``None`` once the channel is closed and drained."""
        if self._closed and self._size == 0:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any other waiter.
            self._queue.put_nowait(_CLOSED)
            return None
        self._size -= 1
        return item

    def get_nowait(self) -> AIEvent | None:
        if self._size == 0:
            return None
        item = self._queue.get_nowait()
        self._size -= 1
        return item

    def drain(self) -> list[AIEvent]:
        """Remove and return every queued event."""
        events: list[AIEvent] = []
        while self._size:
            event = self.get_nowait()
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return self._size

    async def __aiter__(self) -> AsyncIterator[AIEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event
