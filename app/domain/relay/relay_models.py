"""Relay domain models."""

from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from pydantic import BaseModel

from app.schemas import ParticipantRole

from .connection import Connection


@dataclass(eq=False)
class Participant:
    """One role-bearing binding of a connection. Hashed by identity."""

    connection: Connection
    role: ParticipantRole = ParticipantRole.UNASSIGNED
    participant_id: str = field(default_factory=lambda: uuid4().hex[:8])

    def __repr__(self) -> str:
        return f"Participant({self.participant_id}, {self.role})"

    @property
    def is_open(self) -> bool:
        return self.connection.is_open

    def send(self, message: dict[str, Any]) -> None:
        self.connection.send(message)


class RelayStatus(BaseModel):
    """Point-in-time view of the registry."""

    has_streamer: bool
    streamer_id: str | None = None
    viewer_count: int = 0
    viewer_ids: list[str] = []
