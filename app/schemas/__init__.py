"""Signaling relay schemas."""

from .participant_role import ParticipantRole
from .signal_message import (
    InboundType,
    OutboundType,
    SignalMessage,
    error_frame,
    notice,
    relayed,
)

__all__ = [
    "InboundType",
    "OutboundType",
    "ParticipantRole",
    "SignalMessage",
    "error_frame",
    "notice",
    "relayed",
]
