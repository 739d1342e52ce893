"""WebSocket transport: registration, dial, framed send/receive."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import websockets
from loguru import logger
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed as WsConnectionClosed
from websockets.exceptions import WebSocketException

from eventsocket.config import ClientConfig
from eventsocket.errors import (
    ConnectionClosed,
    DialError,
    NotConnected,
    ReceiveError,
    RegistrationError,
    SendError,
)
from eventsocket.protocol import Envelope


class Transport:
    """Owns the one live connection of a client.

    Writes are serialized with a lock so concurrent callers never interleave
    frames. Only the dispatch loop may call ``receive``.
    """

    def __init__(self, cfg: ClientConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self.cfg = cfg
        self._http = http_client
        self._ws: Any = None  # websockets.asyncio.client.ClientConnection
        self._write_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def register(self) -> str:
        url = self.cfg.registration_url
        try:
            resp = await self._post(url)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            raise RegistrationError(f"registration at {url} failed: {e}") from e
        except ValueError as e:
            raise RegistrationError(f"registration at {url} returned invalid JSON: {e}") from e

        client_id = data.get("Id") if isinstance(data, dict) else None
        if not isinstance(client_id, str) or not client_id:
            raise RegistrationError(f"registration at {url} returned no Id: {data!r}")
        logger.info(f"registered with {self.cfg.server} as {client_id}")
        return client_id

    async def _post(self, url: str) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if self._http is not None:
            return await self._http.post(url, content=b"", headers=headers)
        async with httpx.AsyncClient(timeout=self.cfg.registration_timeout) as client:
            return await client.post(url, content=b"", headers=headers)

    async def connect(self, client_id: str) -> None:
        if not client_id:
            raise ValueError("client id required before dialing")
        if self._ws is not None:
            return
        url = self.cfg.socket_url(client_id)
        try:
            self._ws = await websockets.connect(url, **self._dial_options())
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise DialError(f"could not dial {url}: {e}") from e
        logger.info(f"connected to {url}")

    def _dial_options(self) -> dict[str, Any]:
        opts: dict[str, Any] = {
            "open_timeout": self.cfg.handshake_timeout,
            "write_limit": self.cfg.write_buffer_size,
        }
        if self.cfg.max_message_size is not None:
            opts["max_size"] = self.cfg.max_message_size
        return opts

    async def reconnect(self, client_id: str) -> None:
        await self.close()
        await self.connect(client_id)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            logger.warning(f"error while closing connection: {e}")

    async def send(self, envelope: Envelope) -> None:
        ws = self._require()
        try:
            data = envelope.to_json()
        except (TypeError, ValueError) as e:
            raise SendError(f"cannot encode {envelope.type.name} payload: {e}") from e
        async with self._write_lock:
            try:
                await ws.send(data)
            except (OSError, WebSocketException) as e:
                raise SendError(f"send {envelope.type.name} failed: {e}") from e

    async def receive(self) -> Envelope:
        ws = self._require()
        timeout = self.cfg.read_timeout
        try:
            if timeout is None:
                raw = await ws.recv()
            else:
                raw = await asyncio.wait_for(ws.recv(), timeout)
        except asyncio.TimeoutError as e:
            raise ReceiveError(f"no message within {timeout}s") from e
        except WsConnectionClosed as e:
            code = e.rcvd.code if e.rcvd is not None else None
            raise ConnectionClosed(f"connection closed: {e}", code=code) from e

        try:
            return Envelope.from_json(raw)
        except (ValueError, ValidationError) as e:
            raise ReceiveError(f"undecodable frame: {e}", raw=raw) from e

    def set_max_message_size(self, limit: int | None) -> None:
        self.cfg.max_message_size = limit
        if self._ws is not None:
            # read on every incoming frame; newer websockets releases renamed max_size
            protocol = self._ws.protocol
            if hasattr(protocol, "max_message_size"):
                protocol.max_message_size = limit
            else:
                protocol.max_size = limit

    def set_read_deadline(self, seconds: float | None) -> None:
        self.cfg.read_timeout = seconds

    def _require(self) -> Any:
        if self._ws is None:
            raise NotConnected("transport is not connected")
        return self._ws
