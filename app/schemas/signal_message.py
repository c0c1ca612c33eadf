"""Signaling wire messages.

Every frame is a JSON object with a `type` field. The relay only inspects
`type`; `offer`, `answer` and `candidate` are forwarded without looking inside.
"""

from enum import Enum
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict


class InboundType(str, Enum):
    """Message types sent by participants."""

    STREAMER_READY = "streamer-ready"
    VIEWER_READY = "viewer-ready"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    DISCONNECT = "disconnect"

    def __str__(self) -> str:
        return self.value


class OutboundType(str, Enum):
    """Message types originated by the relay."""

    STREAMER_AVAILABLE = "streamer-available"
    STREAMER_UNAVAILABLE = "streamer-unavailable"
    REQUEST_OFFER = "request-offer"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


class SignalMessage(BaseModel):
    """One parsed inbound frame. Unknown fields are kept as-is."""

    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    offer: Any = None
    answer: Any = None
    candidate: Any = None

    @classmethod
    def parse_frame(cls, raw: str | bytes) -> "SignalMessage":
        """Decode one text frame.

        Payloads are forwarded as decoded; integers wider than 64 bits come
        back from orjson as floats.

        Raises:
            orjson.JSONDecodeError: frame is not JSON
            pydantic.ValidationError: frame is not an object with a string `type`
        """
        return cls.model_validate(orjson.loads(raw))

    @property
    def inbound_type(self) -> InboundType | None:
        try:
            return InboundType(self.type)
        except ValueError:
            return None


def notice(message_type: OutboundType) -> dict[str, Any]:
    """Relay-originated notification without payload."""
    return {"type": message_type.value}


def relayed(message_type: OutboundType, field: str, payload: Any) -> dict[str, Any]:
    """Forwarded handshake message carrying one opaque payload field."""
    return {"type": message_type.value, field: payload}


def error_frame(errcode: str, errmesg: str, erresid: str) -> dict[str, Any]:
    return {
        "type": OutboundType.ERROR.value,
        "errcode": errcode,
        "errmesg": errmesg,
        "erresid": erresid,
    }


__all__ = [
    "InboundType",
    "OutboundType",
    "SignalMessage",
    "error_frame",
    "notice",
    "relayed",
]
