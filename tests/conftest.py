from __future__ import annotations

import asyncio
from typing import Any

import pytest

from eventsocket.config import ClientConfig
from eventsocket.protocol import Envelope, MessageType, make_envelope


class FakeTransport:
    """In-memory stand-in for Transport: inbound traffic is fed by the test."""

    def __init__(self, client_id: str = "client-1") -> None:
        self.client_id = client_id
        self.inbound: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[Envelope] = []
        self.connected = False
        self.dials = 0
        self.fail_send: Exception | None = None
        self.on_send = None

    def feed(self, *items: Any) -> None:
        for item in items:
            self.inbound.put_nowait(item)

    async def register(self) -> str:
        return self.client_id

    async def connect(self, client_id: str) -> None:
        self.connected = True
        self.dials += 1

    async def reconnect(self, client_id: str) -> None:
        await self.close()
        await self.connect(client_id)

    async def close(self) -> None:
        self.connected = False

    async def send(self, envelope: Envelope) -> None:
        if self.on_send is not None:
            self.on_send(envelope)
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(envelope)

    async def receive(self) -> Envelope:
        item = await self.inbound.get()
        if isinstance(item, Exception):
            raise item
        return item


def event(topic: str, **payload: Any) -> Envelope:
    return make_envelope(MessageType.STANDARD, event=topic, payload=payload)


def broadcast(**payload: Any) -> Envelope:
    return make_envelope(MessageType.BROADCAST, payload=payload)


def reply(request_id: str, **payload: Any) -> Envelope:
    return make_envelope(MessageType.REPLY, request_id=request_id, reply_client_id="client-1", payload=payload)


async def drain(channel) -> list[Any]:
    return [await channel.get() for _ in range(channel.qsize())]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def cfg() -> ClientConfig:
    return ClientConfig(server="events.test:8080", channel_size=16)
