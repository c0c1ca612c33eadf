"""Relay registry - tracks the streamer and viewers and routes handshake messages.

All methods are synchronous and never await I/O: they run on the event loop
thread, one message at a time, so reads and writes of `streamer` and `viewers`
never interleave. Sends go through `Connection.send`, which only enqueues.
"""

from collections.abc import Callable
from typing import Any

from loguru import logger

from app.app_config import ValidationMode
from app.schemas import (
    InboundType,
    OutboundType,
    ParticipantRole,
    SignalMessage,
    notice,
    relayed,
)
from app.utils.app_errors import AppError, AppErrorCode

from .participant_state_machine import ParticipantStateMachine
from .relay_models import Participant, RelayStatus


class RelayRegistry:
    """Process-wide participant registry.

    Invariants:
    - `streamer` is None or a participant whose role is STREAMER
    - every member of `viewers` has role VIEWER
    - `streamer` is never a member of `viewers`
    """

    def __init__(self, validation_mode: ValidationMode = ValidationMode.PERMISSIVE):
        self.validation_mode = validation_mode
        self.streamer: Participant | None = None
        self.viewers: set[Participant] = set()

        self._handlers: dict[InboundType, Callable[[Participant, SignalMessage], None]] = {
            InboundType.STREAMER_READY: lambda p, _: self.on_streamer_ready(p),
            InboundType.VIEWER_READY: lambda p, _: self.on_viewer_ready(p),
            InboundType.OFFER: lambda p, m: self.on_offer(p, m.offer),
            InboundType.ANSWER: lambda p, m: self.on_answer(p, m.answer),
            InboundType.ICE_CANDIDATE: lambda p, m: self.on_ice_candidate(p, m.candidate),
            InboundType.DISCONNECT: lambda p, _: self.on_disconnect_or_close(p),
        }

    @property
    def strict(self) -> bool:
        return self.validation_mode == ValidationMode.STRICT

    # ==================== DISPATCH ====================

    def dispatch(self, participant: Participant, message: SignalMessage) -> None:
        """Route one parsed inbound message to its operation.

        Raises AppError in strict mode on role misuse.
        """
        message_type = message.inbound_type
        if message_type is None:
            logger.debug("[{}] ignoring unknown message type {!r}", participant.participant_id, message.type)
            return

        self._handlers[message_type](participant, message)

    # ==================== ROLE DECLARATION ====================

    def on_streamer_ready(self, participant: Participant) -> None:
        if not self._declare(participant, ParticipantRole.STREAMER):
            return

        previous = self.streamer
        participant.role = ParticipantRole.STREAMER
        self.streamer = participant

        if previous is not None:
            logger.info(
                "Streamer {} replaced by {}", previous.participant_id, participant.participant_id
            )
        logger.info("Streamer {} is ready", participant.participant_id)

        self.broadcast_to_viewers(notice(OutboundType.STREAMER_AVAILABLE))

    def on_viewer_ready(self, participant: Participant) -> None:
        if not self._declare(participant, ParticipantRole.VIEWER):
            return

        participant.role = ParticipantRole.VIEWER
        self.viewers.add(participant)
        logger.info(
            "Viewer {} connected, total viewers: {}", participant.participant_id, len(self.viewers)
        )

        if self._send_to_streamer(notice(OutboundType.REQUEST_OFFER)):
            logger.info("Requested offer from streamer {}", self.streamer.participant_id)  # type: ignore[union-attr]
        else:
            self._deliver(participant, notice(OutboundType.STREAMER_UNAVAILABLE))

    # ==================== HANDSHAKE ====================

    def on_offer(self, participant: Participant, payload: Any) -> None:
        if not self._may_send(participant, InboundType.OFFER):
            return

        sent = self.broadcast_to_viewers(relayed(OutboundType.OFFER, "offer", payload))
        logger.debug("Forwarded offer from streamer to {} viewers", sent)

    def on_answer(self, participant: Participant, payload: Any) -> None:
        if not self._may_send(participant, InboundType.ANSWER):
            return

        if self._send_to_streamer(relayed(OutboundType.ANSWER, "answer", payload)):
            logger.debug("Forwarded answer from viewer {} to streamer", participant.participant_id)

    def on_ice_candidate(self, participant: Participant, payload: Any) -> None:
        if not self._may_send(participant, InboundType.ICE_CANDIDATE):
            return

        message = relayed(OutboundType.ICE_CANDIDATE, "candidate", payload)
        if participant is self.streamer:
            self.broadcast_to_viewers(message)
        else:
            self._send_to_streamer(message)

    # ==================== LIFECYCLE ====================

    def on_disconnect_or_close(self, participant: Participant) -> None:
        """Evict a participant. Calling it again for the same participant does nothing."""
        if participant is self.streamer:
            self.streamer = None
            logger.info("Streamer {} disconnected", participant.participant_id)
            self.broadcast_to_viewers(notice(OutboundType.STREAMER_UNAVAILABLE))
        elif participant in self.viewers:
            self.viewers.discard(participant)
            logger.info(
                "Viewer {} disconnected, remaining viewers: {}",
                participant.participant_id,
                len(self.viewers),
            )

    # ==================== DELIVERY ====================

    def broadcast_to_viewers(self, message: dict[str, Any]) -> int:
        """Send `message` to every open viewer registered at call time.

        Iterates a snapshot, so evictions triggered while sending do not affect
        the loop. Returns the number of viewers the message was handed to.
        """
        sent = 0
        for viewer in list(self.viewers):
            if self._deliver(viewer, message):
                sent += 1
        return sent

    def _send_to_streamer(self, message: dict[str, Any]) -> bool:
        if self.streamer is None:
            return False
        return self._deliver(self.streamer, message)

    def _deliver(self, target: Participant, message: dict[str, Any]) -> bool:
        if not target.is_open:
            return False
        try:
            target.send(message)
        except Exception as exc:
            logger.warning(
                "Send of {} to {} failed: {}", message.get("type"), target.participant_id, exc
            )
            return False
        return True

    # ==================== ROLE CHECKS ====================

    def registered_role(self, participant: Participant) -> ParticipantRole:
        """Role the registry currently routes for; evicted or replaced participants are UNASSIGNED."""
        if participant is self.streamer:
            return ParticipantRole.STREAMER
        if participant in self.viewers:
            return ParticipantRole.VIEWER
        return ParticipantRole.UNASSIGNED

    def _declare(self, participant: Participant, role: ParticipantRole) -> bool:
        if ParticipantStateMachine.can_transition(participant.role, role):
            return True

        self._reject(
            participant,
            AppErrorCode.E_ROLE_ALREADY_ASSIGNED,
            f"Role already assigned: {participant.role}, cannot become {role}",
        )
        return False

    def _may_send(self, participant: Participant, message_type: InboundType) -> bool:
        role = self.registered_role(participant)
        if ParticipantStateMachine.can_send(role, message_type):
            return True

        self._reject(
            participant,
            AppErrorCode.E_ROLE_MISMATCH,
            f"Role {role} may not send {message_type}",
        )
        return False

    def _reject(self, participant: Participant, errcode: AppErrorCode, errmesg: str) -> None:
        if self.strict:
            raise AppError(errcode=errcode, errmesg=errmesg)
        logger.debug("[{}] ignored: {}", participant.participant_id, errmesg)

    # ==================== STATUS ====================

    def snapshot(self) -> RelayStatus:
        return RelayStatus(
            has_streamer=self.streamer is not None,
            streamer_id=self.streamer.participant_id if self.streamer else None,
            viewer_count=len(self.viewers),
            viewer_ids=sorted(viewer.participant_id for viewer in self.viewers),
        )
