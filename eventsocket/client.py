from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from loguru import logger

from eventsocket.channel import Channel
from eventsocket.config import ClientConfig
from eventsocket.correlation import CorrelationTable, topic_list
from eventsocket.dispatch import Dispatcher
from eventsocket.errors import ChannelClosed, ConnectionClosed, NotConnected
from eventsocket.protocol import Envelope, MessageType, Received, make_envelope, topic_envelope
from eventsocket.transport import Transport


def _new_id() -> str:
    return str(uuid4())


class Client:
    """Async client multiplexing broadcasts, events and request/reply over one socket.

    Typical use::

        client = await Client.create(ClientConfig(server="localhost:8080"))
        async with client:
            alerts = await client.subscribe("alerts")
            async for r in alerts:
                ...

    Inbound broadcasts land on ``broadcasts``, requests addressed to us on
    ``requests``, and receive failures on ``errors``. All of these must be
    drained: a full channel holds up every other kind of traffic.
    """

    def __init__(
        self,
        cfg: ClientConfig,
        *,
        transport: Transport | None = None,
        generate_id: Callable[[], str] = _new_id,
    ) -> None:
        self.cfg = cfg
        self.transport = transport or Transport(cfg)
        self.generate_id = generate_id
        self._id: str | None = None

        self.table = CorrelationTable(cfg.channel_size)
        self.broadcasts = Channel(cfg.channel_size, name="broadcast")
        self.requests = Channel(cfg.channel_size, name="request")
        self.errors = Channel(cfg.channel_size, name="error")
        self.dispatcher = Dispatcher(
            self.transport,
            self.table,
            broadcasts=self.broadcasts,
            requests=self.requests,
            errors=self.errors,
        )

        self._recv_task: asyncio.Task[None] | None = None
        self._sweep_task: asyncio.Task[None] | None = None

    @classmethod
    async def create(cls, cfg: ClientConfig, **kwargs: Any) -> "Client":
        client = cls(cfg, **kwargs)
        await client.register()
        return client

    @property
    def id(self) -> str | None:
        return self._id

    @id.setter
    def id(self, value: str) -> None:
        if self._id is not None:
            raise RuntimeError(f"client id already assigned ({self._id})")
        if not value:
            raise ValueError("client id must be non-empty")
        self._id = value

    @property
    def running(self) -> bool:
        return self._recv_task is not None and not self._recv_task.done()

    async def register(self) -> str:
        self.id = await self.transport.register()
        return self.id

    async def connect(self) -> None:
        if self._id is None:
            raise NotConnected("client is not registered; call register() first")
        if self.running:
            return
        if self.transport.connected:
            # the loop stopped on a dropped socket; dial a fresh one
            await self.transport.reconnect(self._id)
        else:
            await self.transport.connect(self._id)
        self._start()

    async def reconnect(self) -> None:
        """Tear down the loop and the socket, dial again with the same id.

        Registered subscriptions and pending requests survive; whether the
        server re-delivers anything for them is up to the server.
        """
        if self._id is None:
            raise NotConnected("client is not registered; call register() first")
        await self._stop()
        await self.transport.reconnect(self._id)
        self._start()

    async def close(self) -> None:
        await self._stop()
        await self.transport.close()
        await self.table.close_all()
        for channel in (self.broadcasts, self.requests, self.errors):
            channel.close()
        logger.info(f"client {self._id} closed")

    async def wait_closed(self) -> None:
        """Return once the dispatch loop has stopped (connection lost or closed)."""
        if self._recv_task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.shield(self._recv_task)

    async def __aenter__(self) -> "Client":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _start(self) -> None:
        self._recv_task = asyncio.create_task(self._recv_loop())
        if self.cfg.request_ttl is not None:
            self._sweep_task = asyncio.create_task(self._sweep_loop(self.cfg.request_ttl))

    async def _stop(self) -> None:
        for task in (self._sweep_task, self._recv_task):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._sweep_task = None
        self._recv_task = None

    async def _recv_loop(self) -> None:
        try:
            await self.dispatcher.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"dispatch loop crashed: {e}")
            self.errors.offer(Received(error=ConnectionClosed(f"dispatch loop crashed: {e}")))

    async def _sweep_loop(self, ttl: float) -> None:
        while True:
            await asyncio.sleep(self.cfg.sweep_interval)
            await self.table.expire_requests(ttl)

    # Outbound traffic

    async def broadcast(self, payload: dict[str, Any] | None = None) -> None:
        await self._send(make_envelope(MessageType.BROADCAST, payload=payload))

    async def emit(self, topic: str, payload: dict[str, Any] | None = None) -> None:
        if not topic:
            raise ValueError("topic required")
        await self._send(make_envelope(MessageType.STANDARD, event=topic, payload=payload))

    async def subscribe(self, *topics: str) -> Channel:
        # register first so an event arriving right after the server
        # processes the Subscribe already has a destination
        staged = await self.table.stage_subscription(topics)
        try:
            await self._send(topic_envelope(MessageType.SUBSCRIBE, staged.topics))
        except Exception:
            await self.table.rollback_subscription(staged)
            raise
        await self.table.commit_subscription(staged)
        logger.debug(f"subscribed to {staged.channel.name}")
        return staged.channel

    async def unsubscribe(self, *topics: str) -> None:
        names = topic_list(topics)
        await self._send(topic_envelope(MessageType.UNSUBSCRIBE, names))
        await self.table.unregister_subscription(names)

    async def request(self, target_client_id: str, payload: dict[str, Any] | None = None) -> Channel:
        """Send a request to another client; the returned channel yields one reply then closes.

        The channel's ``name`` is the request id. Use ``cancel_request`` when
        the reply is no longer wanted.
        """
        request_id = self.generate_id()
        channel = await self.table.register_request(request_id)
        env = make_envelope(
            MessageType.REQUEST,
            request_id=request_id,
            request_client_id=target_client_id,
            payload=payload,
        )
        try:
            await self._send(env)
        except Exception:
            await self.table.cancel_request(request_id)
            raise
        return channel

    async def call(
        self,
        target_client_id: str,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Envelope:
        channel = await self.request(target_client_id, payload)
        try:
            r = await asyncio.wait_for(channel.get(), timeout=timeout)
        except asyncio.TimeoutError:
            await self.table.cancel_request(channel.name)
            raise
        except ChannelClosed as e:
            raise ConnectionClosed(f"request {channel.name} abandoned before a reply arrived") from e
        return r.envelope

    async def cancel_request(self, request_id: str) -> bool:
        return await self.table.cancel_request(request_id)

    async def reply(self, request_id: str, target_client_id: str, payload: dict[str, Any] | None = None) -> None:
        await self._send(
            make_envelope(
                MessageType.REPLY,
                request_id=request_id,
                reply_client_id=target_client_id,
                payload=payload,
            )
        )

    async def _send(self, env: Envelope) -> None:
        await self.transport.send(env)
