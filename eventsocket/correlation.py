"""Correlation table: request ids and topics mapped to delivery channels."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from collections.abc import Iterable

from loguru import logger

from eventsocket.channel import Channel


@dataclass
class PendingRequest:
    request_id: str
    channel: Channel
    created_at: float = field(default_factory=time.monotonic)


@dataclass
class StagedSubscription:
    channel: Channel
    topics: list[str]
    replaced: dict[str, Channel]


class CorrelationTable:
    """Shared between the facade (registers) and the dispatch loop (resolves).

    Every operation holds ``lock`` only for the lookup/mutation itself; sends to
    a channel always happen after the lock is released.
    """

    def __init__(self, channel_size: int = 64) -> None:
        self.channel_size = channel_size
        self.lock = asyncio.Lock()
        self._requests: dict[str, PendingRequest] = {}
        self._topics: dict[str, Channel] = {}

    @property
    def pending_requests(self) -> list[str]:
        return list(self._requests)

    @property
    def topics(self) -> dict[str, Channel]:
        return dict(self._topics)

    async def register_request(self, request_id: str) -> Channel:
        if not request_id:
            raise ValueError("request_id required")
        async with self.lock:
            if request_id in self._requests:
                raise ValueError(f"request id already registered: {request_id}")
            channel = Channel(1, name=request_id)
            self._requests[request_id] = PendingRequest(request_id, channel)
        return channel

    async def register_subscription(self, topics: Iterable[str]) -> Channel:
        staged = await self.stage_subscription(topics)
        await self.commit_subscription(staged)
        return staged.channel

    async def stage_subscription(self, topics: Iterable[str]) -> StagedSubscription:
        """Point the topics at a new channel, remembering what it replaced.

        Superseded channels are left open until ``commit_subscription``;
        ``rollback_subscription`` puts them back.
        """
        names = topic_list(topics)
        async with self.lock:
            channel = Channel(self.channel_size, name=",".join(names))
            replaced = {t: self._topics[t] for t in names if t in self._topics}
            for t in names:
                self._topics[t] = channel
        return StagedSubscription(channel, names, replaced)

    async def commit_subscription(self, staged: StagedSubscription) -> None:
        async with self.lock:
            orphaned = self._orphans(list(staged.replaced.values()))
        for old in orphaned:
            logger.debug(f"subscription {old.name!r} superseded on every topic; closing")
            old.close()

    async def rollback_subscription(self, staged: StagedSubscription) -> None:
        async with self.lock:
            for t in staged.topics:
                # a later registration of the same topic is left alone
                if self._topics.get(t) is not staged.channel:
                    continue
                if t in staged.replaced:
                    self._topics[t] = staged.replaced[t]
                else:
                    del self._topics[t]
        staged.channel.close()

    async def resolve_and_consume_request(self, request_id: str) -> Channel | None:
        async with self.lock:
            pending = self._requests.pop(request_id, None)
        return pending.channel if pending else None

    async def resolve_subscription(self, topic: str) -> Channel | None:
        async with self.lock:
            return self._topics.get(topic)

    async def cancel_request(self, request_id: str) -> bool:
        async with self.lock:
            pending = self._requests.pop(request_id, None)
        if pending is None:
            return False
        pending.channel.close()
        return True

    async def unregister_subscription(self, topics: Iterable[str]) -> list[Channel]:
        names = topic_list(topics)
        async with self.lock:
            removed = [self._topics.pop(t) for t in names if t in self._topics]
            orphaned = self._orphans(removed)
        for channel in orphaned:
            channel.close()
        return orphaned

    async def expire_requests(self, max_age: float) -> list[str]:
        cutoff = time.monotonic() - max_age
        async with self.lock:
            dead = [p for p in self._requests.values() if p.created_at < cutoff]
            for p in dead:
                self._requests.pop(p.request_id, None)
        for p in dead:
            p.channel.close()
        if dead:
            logger.info(f"expired {len(dead)} unanswered request(s)")
        return [p.request_id for p in dead]

    async def close_all(self) -> None:
        async with self.lock:
            channels = [p.channel for p in self._requests.values()]
            channels.extend({id(c): c for c in self._topics.values()}.values())
            self._requests.clear()
            self._topics.clear()
        for channel in channels:
            channel.close()

    def _orphans(self, candidates: list[Channel]) -> list[Channel]:
        # caller holds the lock
        live = {id(c) for c in self._topics.values()}
        seen: dict[int, Channel] = {}
        for c in candidates:
            if id(c) not in live:
                seen[id(c)] = c
        return list(seen.values())


def topic_list(topics: Iterable[str]) -> list[str]:
    if isinstance(topics, str):
        topics = [topics]
    names = list(dict.fromkeys(t for t in topics if t))
    if not names:
        raise ValueError("at least one topic required")
    return names
