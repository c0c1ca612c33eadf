"""Participant role enum."""

from enum import Enum


class ParticipantRole(str, Enum):
    """Role of one relay participant.

    Role Transition Flow:

    UNASSIGNED → STREAMER
        ↓
      VIEWER

    - UNASSIGNED: Connection open, no role declared yet.
    - STREAMER: Declared with `streamer-ready`. At most one is registered at a time.
    - VIEWER: Declared with `viewer-ready`.

    A role is declared once; both roles end when the participant disconnects.
    """

    UNASSIGNED = "unassigned"
    STREAMER = "streamer"
    VIEWER = "viewer"

    def __str__(self) -> str:
        return self.value


__all__ = ["ParticipantRole"]
