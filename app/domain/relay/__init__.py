"""
Signaling relay domain.

Includes:
- relay_registry: streamer/viewer registry and message routing.
- participant_state_machine: role transitions and send permissions.
- connection: fire-and-forget connection endpoints.
"""

from .connection import Connection, WebSocketConnection
from .participant_state_machine import ParticipantStateMachine
from .relay_models import Participant, RelayStatus
from .relay_registry import RelayRegistry

__all__ = [
    "Connection",
    "Participant",
    "ParticipantStateMachine",
    "RelayRegistry",
    "RelayStatus",
    "WebSocketConnection",
]
