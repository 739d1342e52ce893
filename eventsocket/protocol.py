"""Event socket wire protocol helpers (JSON over WebSocket)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MessageType(IntEnum):
    BROADCAST = 1
    STANDARD = 2
    REQUEST = 3
    REPLY = 4
    SUBSCRIBE = 5
    UNSUBSCRIBE = 6


CORRELATED_TYPES = frozenset({MessageType.REQUEST, MessageType.REPLY})
TOPIC_TYPES = frozenset({MessageType.STANDARD, MessageType.SUBSCRIBE, MessageType.UNSUBSCRIBE})


class Envelope(BaseModel):
    """One message unit on the wire.

    Attribute names are pythonic; the wire keys are the aliases
    (``MessageType``, ``Event``, ``RequestId``, ...). Payload is an open
    attribute bag, always present.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: MessageType = Field(alias="MessageType")
    event: str | None = Field(default=None, alias="Event")
    request_id: str | None = Field(default=None, alias="RequestId")
    reply_client_id: str | None = Field(default=None, alias="ReplyClientId")
    request_client_id: str | None = Field(default=None, alias="RequestClientId")

    payload: dict[str, Any] = Field(default_factory=dict, alias="Payload")

    @model_validator(mode="before")
    @classmethod
    def _null_payload(cls, data: Any) -> Any:
        # peers may send "Payload": null
        if isinstance(data, dict):
            for key in ("Payload", "payload"):
                if key in data and data[key] is None:
                    data = {**data, key: {}}
        return data

    @model_validator(mode="after")
    def _check_addressing(self) -> "Envelope":
        if self.type in CORRELATED_TYPES and not self.request_id:
            raise ValueError(f"{self.type.name} envelope requires RequestId")
        if self.type not in CORRELATED_TYPES and self.request_id:
            raise ValueError(f"{self.type.name} envelope must not carry RequestId")
        if self.type in TOPIC_TYPES and not self.event:
            raise ValueError(f"{self.type.name} envelope requires Event")
        if self.type not in TOPIC_TYPES and self.event:
            raise ValueError(f"{self.type.name} envelope must not carry Event")
        return self

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        data["Payload"] = self.payload
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=True, separators=(",", ":"))

    @staticmethod
    def from_json(data: str | bytes) -> "Envelope":
        return Envelope.model_validate(json.loads(data))


def make_envelope(msg_type: MessageType, **kwargs: Any) -> Envelope:
    if kwargs.get("payload") is None:
        kwargs.pop("payload", None)
    return Envelope(type=msg_type, **kwargs)


def topic_envelope(msg_type: MessageType, topics: list[str]) -> Envelope:
    """Subscribe/Unsubscribe envelope; the server reads ``Payload["Events"]``."""
    return make_envelope(msg_type, event=",".join(topics), payload={"Events": list(topics)})


@dataclass(frozen=True)
class Received:
    """What every delivery channel carries: an envelope or an error, never both."""

    envelope: Envelope | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
