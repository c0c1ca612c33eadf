"""Participant role state machine."""

from app.schemas import InboundType, ParticipantRole


class ParticipantStateMachine:
    """State machine for participant role transitions.

    State flow with triggers:
    - UNASSIGNED -> STREAMER (`streamer-ready` received)
    - UNASSIGNED -> VIEWER (`viewer-ready` received)
    - STREAMER/VIEWER end on disconnect; there is no way back to UNASSIGNED

    Message permissions:
    - offer: STREAMER only
    - answer: VIEWER only
    - ice-candidate: STREAMER or VIEWER
    """

    TRANSITIONS: dict[ParticipantRole, set[ParticipantRole]] = {
        ParticipantRole.UNASSIGNED: {ParticipantRole.STREAMER, ParticipantRole.VIEWER},
        ParticipantRole.STREAMER: set(),
        ParticipantRole.VIEWER: set(),
    }

    # Role each declaration message moves to
    DECLARATIONS: dict[InboundType, ParticipantRole] = {
        InboundType.STREAMER_READY: ParticipantRole.STREAMER,
        InboundType.VIEWER_READY: ParticipantRole.VIEWER,
    }

    # Roles allowed to send each handshake message
    SENDERS: dict[InboundType, set[ParticipantRole]] = {
        InboundType.OFFER: {ParticipantRole.STREAMER},
        InboundType.ANSWER: {ParticipantRole.VIEWER},
        InboundType.ICE_CANDIDATE: {ParticipantRole.STREAMER, ParticipantRole.VIEWER},
    }

    @classmethod
    def can_transition(cls, current: ParticipantRole, new: ParticipantRole) -> bool:
        """Check if role transition is valid.

        Args:
            current: Current participant role
            new: Target role

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def can_send(cls, role: ParticipantRole, message_type: InboundType) -> bool:
        """Check if a participant with `role` may send `message_type`."""
        return role in cls.SENDERS.get(message_type, set())
