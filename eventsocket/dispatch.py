"""The single reader: pulls envelopes off the transport and routes them."""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from eventsocket.channel import Channel
from eventsocket.correlation import CorrelationTable
from eventsocket.errors import ChannelClosed, ConnectionClosed, NotConnected, ReceiveError
from eventsocket.protocol import Envelope, MessageType, Received


class Receiver(Protocol):
    async def receive(self) -> Envelope: ...


class Dispatcher:
    """Routes inbound traffic by type tag.

    Broadcasts and inbound requests go to their well-known channels, events to
    the subscription registered for their topic, replies to the pending
    request that asked for them. A put on a full channel waits, so a consumer
    that stops reading stalls the whole loop.
    """

    def __init__(
        self,
        transport: Receiver,
        table: CorrelationTable,
        *,
        broadcasts: Channel,
        requests: Channel,
        errors: Channel,
    ) -> None:
        self.transport = transport
        self.table = table
        self.broadcasts = broadcasts
        self.requests = requests
        self.errors = errors
        self.received = 0
        self.dropped = 0

    async def run(self) -> None:
        while True:
            try:
                env = await self.transport.receive()
            except ReceiveError as e:
                logger.warning(f"dispatch: {e}")
                await self._deliver(self.errors, Received(error=e))
                continue
            except (ConnectionClosed, NotConnected) as e:
                logger.info(f"dispatch loop stopping: {e}")
                if not self.errors.offer(Received(error=e)):
                    logger.warning("error channel full; termination not reported on it")
                return

            self.received += 1
            await self.route(env)

    async def route(self, env: Envelope) -> None:
        r = Received(envelope=env)
        t = env.type

        if t == MessageType.BROADCAST:
            await self._deliver(self.broadcasts, r)
            return

        if t == MessageType.REQUEST:
            await self._deliver(self.requests, r)
            return

        if t == MessageType.STANDARD:
            channel = await self.table.resolve_subscription(env.event or "")
            if channel is None:
                logger.debug(f"no subscriber for event {env.event!r}; dropped")
                self.dropped += 1
                return
            await self._deliver(channel, r)
            return

        if t == MessageType.REPLY:
            channel = await self.table.resolve_and_consume_request(env.request_id or "")
            if channel is None:
                logger.debug(f"reply for unknown request {env.request_id}; dropped")
                self.dropped += 1
                return
            await self._deliver(channel, r)
            channel.close()
            return

        logger.debug(f"ignoring inbound {t.name} envelope")
        self.dropped += 1

    async def _deliver(self, channel: Channel, r: Received) -> None:
        try:
            await channel.put(r)
        except ChannelClosed:
            # unsubscribed or cancelled between lookup and delivery
            logger.debug(f"channel {channel.name!r} closed; dropped")
            self.dropped += 1
