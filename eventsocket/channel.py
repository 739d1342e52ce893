"""Closable single-consumer delivery channel."""

from __future__ import annotations

import asyncio
from typing import Any

from eventsocket.errors import ChannelClosed

_CLOSED = object()


class Channel:
    """Bounded FIFO between the dispatch loop and one consumer.

    ``put`` waits while the channel is full. ``close`` lets the consumer drain
    what is already queued; after that ``get`` raises ``ChannelClosed`` and
    ``async for`` stops.
    """

    def __init__(self, maxsize: int, name: str = "") -> None:
        self.name = name
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._closed_event = asyncio.Event()
        self._sentinel = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Channel {self.name!r} {state} qsize={self.qsize()}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize() - int(self._sentinel)

    async def put(self, item: Any) -> None:
        if self._closed:
            raise ChannelClosed(f"channel {self.name!r} is closed")
        if not self._queue.full():
            self._queue.put_nowait(item)
            return

        # wait for room, but give up as soon as the channel is closed
        putter = asyncio.ensure_future(self._queue.put(item))
        closer = asyncio.ensure_future(self._closed_event.wait())
        try:
            await asyncio.wait({putter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (putter, closer):
                if not task.done():
                    task.cancel()
        if putter.done() and not putter.cancelled():
            return
        raise ChannelClosed(f"channel {self.name!r} closed while waiting to deliver")

    def offer(self, item: Any) -> bool:
        """Non-blocking put; false when the channel is full or closed."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            return False
        return True

    async def get(self) -> Any:
        if self._closed and self._queue.empty():
            raise ChannelClosed(f"channel {self.name!r} is closed")
        item = await self._queue.get()
        if item is _CLOSED:
            self._sentinel = False
            raise ChannelClosed(f"channel {self.name!r} is closed")
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()
        # A full queue has no waiting consumer; get() notices the flag once drained.
        try:
            self._queue.put_nowait(_CLOSED)
            self._sentinel = True
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "Channel":
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.get()
        except ChannelClosed:
            raise StopAsyncIteration from None
