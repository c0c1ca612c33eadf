"""Tests for RelayRegistry role assignment, routing and eviction."""

import pytest

from app.domain.relay import Participant, RelayRegistry
from app.schemas import ParticipantRole, SignalMessage
from app.utils.app_errors import AppError, AppErrorCode

OFFER = {"type": "offer", "sdp": "v=0 offer"}
ANSWER = {"type": "answer", "sdp": "v=0 answer"}
CANDIDATE = {"candidate": "candidate:1 1 udp 2122260223 10.0.0.2 54321 typ host", "sdpMLineIndex": 0}


def assert_invariants(registry: RelayRegistry) -> None:
    if registry.streamer is not None:
        assert registry.streamer.role == ParticipantRole.STREAMER
        assert registry.streamer not in registry.viewers
    assert all(viewer.role == ParticipantRole.VIEWER for viewer in registry.viewers)


class TestScenarios:
    """End-to-end message flows between one streamer and its viewers."""

    def test_viewer_without_streamer_gets_unavailable(self, registry, make_participant):
        """Scenario A: a viewer joining an empty relay is told no streamer is live."""
        v1 = make_participant("v1")

        registry.on_viewer_ready(v1)

        assert v1.connection.types() == ["streamer-unavailable"]

    def test_viewer_join_requests_offer_from_streamer(self, registry, make_participant):
        """Scenario B: a viewer joining triggers exactly one request-offer."""
        s1, v1 = make_participant("s1"), make_participant("v1")

        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)

        assert s1.connection.types() == ["request-offer"]
        assert "streamer-unavailable" not in v1.connection.types()

    def test_offer_reaches_every_viewer(self, registry, make_participant):
        """Scenario C: the streamer's offer is relayed verbatim to all viewers."""
        s1, v1, v2 = make_participant("s1"), make_participant("v1"), make_participant("v2")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)
        registry.on_viewer_ready(v2)

        registry.on_offer(s1, OFFER)

        for viewer in (v1, v2):
            assert viewer.connection.sent == [{"type": "offer", "offer": OFFER}]

    def test_streamer_disconnect_notifies_viewers(self, registry, make_participant):
        """Scenario D: viewers learn the streamer left; later answers go nowhere."""
        s1, v1 = make_participant("s1"), make_participant("v1")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)

        registry.on_disconnect_or_close(s1)
        registry.on_answer(v1, ANSWER)

        assert v1.connection.types() == ["streamer-unavailable"]
        assert registry.streamer is None
        assert "answer" not in s1.connection.types()

    def test_second_streamer_replaces_first(self, registry, make_participant):
        """Scenario E: the latest streamer wins and the old one is not told."""
        s1, s2, v1 = make_participant("s1"), make_participant("s2"), make_participant("v1")
        registry.on_viewer_ready(v1)
        v1.connection.sent.clear()

        registry.on_streamer_ready(s1)
        registry.on_streamer_ready(s2)

        assert registry.streamer is s2
        assert s1.connection.sent == []
        assert v1.connection.types() == ["streamer-available", "streamer-available"]

        v1.connection.sent.clear()
        registry.on_offer(s1, {"sdp": "stale"})
        registry.on_offer(s2, OFFER)

        assert v1.connection.sent == [{"type": "offer", "offer": OFFER}]

    def test_answer_reaches_streamer(self, registry, make_participant):
        s1, v1 = make_participant("s1"), make_participant("v1")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)

        registry.on_answer(v1, ANSWER)

        assert s1.connection.sent[-1] == {"type": "answer", "answer": ANSWER}

    def test_ice_candidates_flow_both_ways(self, registry, make_participant):
        s1, v1, v2 = make_participant("s1"), make_participant("v1"), make_participant("v2")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)
        registry.on_viewer_ready(v2)

        registry.on_ice_candidate(s1, CANDIDATE)
        registry.on_ice_candidate(v1, CANDIDATE)

        expected = {"type": "ice-candidate", "candidate": CANDIDATE}
        assert v1.connection.sent == [expected]
        assert v2.connection.sent == [expected]
        assert s1.connection.sent[-1] == expected

    def test_streamer_available_broadcast_on_registration(self, registry, make_participant):
        v1, v2, s1 = make_participant("v1"), make_participant("v2"), make_participant("s1")
        registry.on_viewer_ready(v1)
        registry.on_viewer_ready(v2)

        registry.on_streamer_ready(s1)

        assert v1.connection.types() == ["streamer-unavailable", "streamer-available"]
        assert v2.connection.types() == ["streamer-unavailable", "streamer-available"]


class TestInvariants:
    """Registry state stays consistent across any sequence of events."""

    def test_viewer_count_tracks_joins_and_leaves(self, registry, make_participant):
        viewers = [make_participant(f"v{i}") for i in range(5)]
        for viewer in viewers:
            registry.on_viewer_ready(viewer)

        registry.on_disconnect_or_close(viewers[1])
        registry.on_disconnect_or_close(viewers[3])

        assert len(registry.viewers) == 3
        assert_invariants(registry)

    def test_disconnect_is_idempotent(self, registry, make_participant):
        s1, v1, v2 = make_participant("s1"), make_participant("v1"), make_participant("v2")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)
        registry.on_viewer_ready(v2)

        registry.on_disconnect_or_close(s1)
        registry.on_disconnect_or_close(v1)
        state_after_once = (registry.streamer, set(registry.viewers), list(v2.connection.sent))

        registry.on_disconnect_or_close(s1)
        registry.on_disconnect_or_close(v1)

        assert (registry.streamer, set(registry.viewers), list(v2.connection.sent)) == state_after_once
        assert v2.connection.types().count("streamer-unavailable") == 1

    def test_disconnect_of_unknown_participant_is_noop(self, registry, make_participant):
        s1, stranger = make_participant("s1"), make_participant("x")
        registry.on_streamer_ready(s1)

        registry.on_disconnect_or_close(stranger)

        assert registry.streamer is s1

    def test_replaced_streamer_disconnect_keeps_current(self, registry, make_participant):
        s1, s2, v1 = make_participant("s1"), make_participant("s2"), make_participant("v1")
        registry.on_streamer_ready(s1)
        registry.on_streamer_ready(s2)
        registry.on_viewer_ready(v1)

        registry.on_disconnect_or_close(s1)

        assert registry.streamer is s2
        assert "streamer-unavailable" not in v1.connection.types()

    def test_invariants_hold_through_mixed_sequence(self, registry, make_participant):
        s1, s2 = make_participant("s1"), make_participant("s2")
        v1, v2 = make_participant("v1"), make_participant("v2")

        for step in (
            lambda: registry.on_viewer_ready(v1),
            lambda: registry.on_streamer_ready(s1),
            lambda: registry.on_streamer_ready(v1),
            lambda: registry.on_viewer_ready(s1),
            lambda: registry.on_viewer_ready(v2),
            lambda: registry.on_streamer_ready(s2),
            lambda: registry.on_disconnect_or_close(s2),
            lambda: registry.on_disconnect_or_close(v1),
        ):
            step()
            assert_invariants(registry)

        assert registry.streamer is None
        assert registry.viewers == {v2}


class TestDelivery:
    """Best-effort sends to closed or failing targets."""

    def test_closed_viewer_is_skipped(self, registry, make_participant):
        s1, v1, v2 = make_participant("s1"), make_participant("v1"), make_participant("v2")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)
        registry.on_viewer_ready(v2)
        v1.connection.close()

        sent = registry.broadcast_to_viewers({"type": "offer", "offer": OFFER})

        assert sent == 1
        assert v2.connection.sent == [{"type": "offer", "offer": OFFER}]

    def test_closed_streamer_means_unavailable(self, registry, make_participant):
        s1, v1 = make_participant("s1"), make_participant("v1")
        registry.on_streamer_ready(s1)
        s1.connection.close()

        registry.on_viewer_ready(v1)

        assert v1.connection.types() == ["streamer-unavailable"]

    def test_failing_send_does_not_abort_broadcast(self, registry, make_participant):
        class ExplodingConnection:
            connection_id = "boom"
            is_open = True

            def send(self, message):
                raise RuntimeError("socket gone")

            def close(self):
                pass

        broken = Participant(ExplodingConnection(), participant_id="broken")
        v2 = make_participant("v2")
        registry.on_viewer_ready(broken)
        registry.on_viewer_ready(v2)

        sent = registry.broadcast_to_viewers({"type": "streamer-available"})

        assert sent == 1
        assert v2.connection.types()[-1] == "streamer-available"

    def test_failing_unavailable_notice_keeps_viewer_registered(self, registry):
        class ExplodingConnection:
            connection_id = "boom"
            is_open = True

            def send(self, message):
                raise RuntimeError("socket gone")

            def close(self):
                pass

        broken = Participant(ExplodingConnection(), participant_id="broken")

        registry.on_viewer_ready(broken)

        assert registry.viewers == {broken}
        assert broken.role == ParticipantRole.VIEWER

    def test_eviction_during_broadcast_uses_snapshot(self, registry, make_participant):
        v1, v2, v3 = make_participant("v1"), make_participant("v2"), make_participant("v3")
        for viewer in (v1, v2, v3):
            registry.on_viewer_ready(viewer)

        evicting = v1.connection.send

        def send_and_evict(message):
            evicting(message)
            registry.on_disconnect_or_close(v2)

        v1.connection.send = send_and_evict

        registry.broadcast_to_viewers({"type": "streamer-available"})

        assert v2 not in registry.viewers
        assert v3.connection.types()[-1] == "streamer-available"


class TestPermissiveMode:
    """Role misuse and re-declaration are ignored by default."""

    def test_viewer_offer_is_ignored(self, registry, make_participant):
        s1, v1, v2 = make_participant("s1"), make_participant("v1"), make_participant("v2")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)
        registry.on_viewer_ready(v2)

        registry.on_offer(v1, OFFER)

        assert "offer" not in v2.connection.types()

    def test_streamer_answer_is_ignored(self, registry, make_participant):
        s1 = make_participant("s1")
        registry.on_streamer_ready(s1)

        registry.on_answer(s1, ANSWER)

        assert s1.connection.sent == []

    def test_unassigned_ice_candidate_is_ignored(self, registry, make_participant):
        s1, v1, nobody = make_participant("s1"), make_participant("v1"), make_participant("n")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)
        s1.connection.sent.clear()

        registry.on_ice_candidate(nobody, CANDIDATE)

        assert s1.connection.sent == []
        assert v1.connection.sent == []

    def test_redeclaration_keeps_first_role(self, registry, make_participant):
        v1 = make_participant("v1")
        registry.on_viewer_ready(v1)

        registry.on_streamer_ready(v1)

        assert v1.role == ParticipantRole.VIEWER
        assert registry.streamer is None
        assert registry.viewers == {v1}

    def test_viewer_answer_without_streamer_is_noop(self, registry, make_participant):
        v1 = make_participant("v1")
        registry.on_viewer_ready(v1)

        registry.on_answer(v1, ANSWER)

        assert v1.connection.types() == ["streamer-unavailable"]

    def test_evicted_viewer_no_longer_routes(self, registry, make_participant):
        s1, v1 = make_participant("s1"), make_participant("v1")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v1)
        registry.on_disconnect_or_close(v1)
        s1.connection.sent.clear()

        registry.on_answer(v1, ANSWER)

        assert s1.connection.sent == []


class TestStrictMode:
    """Strict mode raises AppError before touching state."""

    def test_viewer_offer_raises_role_mismatch(self, strict_registry, make_participant):
        v1 = make_participant("v1")
        strict_registry.on_viewer_ready(v1)

        with pytest.raises(AppError) as exc_info:
            strict_registry.on_offer(v1, OFFER)

        assert exc_info.value.errcode == AppErrorCode.E_ROLE_MISMATCH.value

    def test_redeclaration_raises_and_leaves_state(self, strict_registry, make_participant):
        v1 = make_participant("v1")
        strict_registry.on_viewer_ready(v1)

        with pytest.raises(AppError) as exc_info:
            strict_registry.on_streamer_ready(v1)

        assert exc_info.value.errcode == AppErrorCode.E_ROLE_ALREADY_ASSIGNED.value
        assert strict_registry.streamer is None
        assert strict_registry.viewers == {v1}
        assert v1.role == ParticipantRole.VIEWER

    def test_answer_without_streamer_is_not_an_error(self, strict_registry, make_participant):
        v1 = make_participant("v1")
        strict_registry.on_viewer_ready(v1)

        strict_registry.on_answer(v1, ANSWER)

        assert v1.connection.types() == ["streamer-unavailable"]


class TestDispatch:
    """Parsed messages are routed by their type field."""

    def test_dispatch_routes_by_type(self, registry, make_participant):
        s1, v1 = make_participant("s1"), make_participant("v1")

        registry.dispatch(s1, SignalMessage(type="streamer-ready"))
        registry.dispatch(v1, SignalMessage(type="viewer-ready"))
        registry.dispatch(s1, SignalMessage(type="offer", offer=OFFER))
        registry.dispatch(v1, SignalMessage(type="answer", answer=ANSWER))
        registry.dispatch(v1, SignalMessage(type="disconnect"))

        assert s1.connection.sent == [
            {"type": "request-offer"},
            {"type": "answer", "answer": ANSWER},
        ]
        assert v1.connection.sent == [{"type": "offer", "offer": OFFER}]
        assert registry.viewers == set()

    def test_unknown_type_is_ignored(self, strict_registry, make_participant):
        p = make_participant("p")

        strict_registry.dispatch(p, SignalMessage(type="create-offer"))

        assert p.role == ParticipantRole.UNASSIGNED
        assert p.connection.sent == []


class TestSnapshot:
    def test_snapshot_reports_current_state(self, registry, make_participant):
        s1, v1, v2 = make_participant("s1"), make_participant("v1"), make_participant("v2")
        registry.on_streamer_ready(s1)
        registry.on_viewer_ready(v2)
        registry.on_viewer_ready(v1)

        status = registry.snapshot()

        assert status.has_streamer is True
        assert status.streamer_id == "s1"
        assert status.viewer_count == 2
        assert status.viewer_ids == ["v1", "v2"]

    def test_snapshot_of_empty_registry(self, registry):
        status = registry.snapshot()

        assert status.has_streamer is False
        assert status.streamer_id is None
        assert status.viewer_count == 0
