from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ClientConfig:
    server: str  # host:port, no scheme
    secure: bool = False
    handshake_timeout: float = 5.0
    registration_timeout: float = 5.0
    write_buffer_size: int = 4096
    max_message_size: int | None = None  # None keeps the websockets default (1 MiB)
    read_timeout: float | None = None
    channel_size: int = 64
    request_ttl: float | None = None
    sweep_interval: float = 1.0

    def __post_init__(self) -> None:
        self.server = self.server.rstrip("/")
        if "://" in self.server:
            raise ValueError(f"server must be host:port without a scheme, got {self.server!r}")
        if self.channel_size < 1:
            raise ValueError("channel_size must be >= 1")

    @property
    def registration_url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.server}/v1/clients"

    def socket_url(self, client_id: str) -> str:
        scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.server}/v1/clients/{client_id}/ws"
