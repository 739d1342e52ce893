"""eventsocket: a client for multiplexed event sockets.

One WebSocket carries broadcasts, topic events and request/reply traffic; a
single dispatch task demultiplexes inbound envelopes onto per-consumer
channels.
"""

from eventsocket.channel import Channel
from eventsocket.client import Client
from eventsocket.config import ClientConfig
from eventsocket.correlation import CorrelationTable
from eventsocket.dispatch import Dispatcher
from eventsocket.errors import (
    ChannelClosed,
    ConnectionClosed,
    DialError,
    EventSocketError,
    NotConnected,
    ReceiveError,
    RegistrationError,
    SendError,
)
from eventsocket.log import disable_logging, enable_logging
from eventsocket.protocol import Envelope, MessageType, Received, make_envelope
from eventsocket.transport import Transport

disable_logging()

__all__ = [
    "Channel",
    "ChannelClosed",
    "Client",
    "ClientConfig",
    "ConnectionClosed",
    "CorrelationTable",
    "DialError",
    "Dispatcher",
    "Envelope",
    "EventSocketError",
    "MessageType",
    "NotConnected",
    "ReceiveError",
    "Received",
    "RegistrationError",
    "SendError",
    "Transport",
    "enable_logging",
    "make_envelope",
]
