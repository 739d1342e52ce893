"""Exceptions raised by the event socket client."""

from __future__ import annotations


class EventSocketError(Exception):
    pass


class RegistrationError(EventSocketError):
    """The server refused to register us, or answered with something unusable."""


class DialError(EventSocketError):
    """The WebSocket could not be opened. Call ``reconnect()`` to retry."""


class SendError(EventSocketError):
    pass


class ReceiveError(EventSocketError):
    """A single inbound frame could not be read or decoded.

    The connection is still usable; the dispatch loop reports this on the
    error channel and keeps reading.
    """

    def __init__(self, message: str, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class ConnectionClosed(EventSocketError):
    def __init__(self, message: str = "connection closed", code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class NotConnected(EventSocketError):
    pass


class ChannelClosed(EventSocketError):
    pass
