"""Tests for the rendezvous lifecycle (join, leave, relay, disconnect)."""

import json

import pytest

from errors import InvalidRoom, NotInRoom, RoomNotReady


def send(hub, connection_id, message):
    hub.handle_raw(connection_id, json.dumps(message))


class TestConnect:
    def test_connect_sends_client_id(self, hub, connect):
        connection_id, transport = connect()

        assert transport.messages == [{"type": "connected", "clientId": connection_id}]
        assert hub.connections.lookup(connection_id).room_id is None

    def test_connection_ids_are_unique(self, connect):
        ids = {connect()[0] for _ in range(50)}
        assert len(ids) == 50


class TestJoinRoom:
    def test_first_joiner_is_initiator_and_not_ready(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})

        assert ta.last() == {"type": "room_joined", "roomId": "r1", "userCount": 1, "isInitiator": True, "ready": False}

    def test_second_joiner_triggers_ready_for_both(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})

        assert tb.of_type("room_joined")[-1] == {
            "type": "room_joined", "roomId": "r1", "userCount": 2, "isInitiator": False, "ready": True,
        }
        assert ta.of_type("room_ready") == [{"type": "room_ready", "roomId": "r1", "userCount": 2, "isInitiator": True}]
        assert tb.of_type("room_ready") == [{"type": "room_ready", "roomId": "r1", "userCount": 2, "isInitiator": False}]

    def test_legacy_payload_room_id_is_accepted(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "join_room", "payload": {"roomId": "legacy"}})

        assert ta.last()["roomId"] == "legacy"
        assert hub.rooms.occupancy("legacy") == 1

    def test_third_joiner_gets_room_full_only(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        c, tc = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})
        ta.clear()
        tb.clear()

        send(hub, c, {"type": "join_room", "roomId": "r1"})

        assert tc.last() == {"type": "room_full", "error": "Room is full", "roomId": "r1"}
        assert ta.messages == [] and tb.messages == []
        assert hub.rooms.occupancy("r1") == 2
        assert hub.connections.lookup(c).room_id is None

    @pytest.mark.parametrize("room_id", ["", None, 42, ["r1"]])
    def test_invalid_room_id_is_rejected(self, hub, connect, room_id):
        a, ta = connect()
        send(hub, a, {"type": "join_room", "roomId": room_id})

        assert ta.last() == {"type": "error", "error": "Invalid roomId"}
        assert len(hub.rooms) == 0

    def test_whitespace_room_id_is_a_valid_name(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "join_room", "roomId": "  "})

        assert ta.last()["type"] == "room_joined"
        assert ta.last()["roomId"] == "  "
        assert hub.rooms.occupancy("  ") == 1

    def test_join_room_raises_invalid_room_directly(self, hub, connect):
        a, _ = connect()
        with pytest.raises(InvalidRoom):
            hub.join_room(a, "")

    def test_switching_rooms_leaves_old_room_and_notifies_peer(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})
        tb.clear()

        send(hub, a, {"type": "join_room", "roomId": "r2"})

        assert tb.messages == [{"type": "peer_left", "message": "Peer left the room", "roomId": "r1"}]
        assert hub.rooms.members("r1") == [b]
        assert hub.rooms.members("r2") == [a]
        assert ta.last()["roomId"] == "r2"
        assert ta.last()["isInitiator"] is True

    def test_rejoining_same_room_does_not_duplicate_membership(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})
        tb.clear()

        send(hub, a, {"type": "join_room", "roomId": "r1"})

        assert hub.rooms.members("r1") == [a, b]
        assert ta.last()["type"] == "room_joined"
        assert tb.messages == []

    def test_initiator_leaves_and_newcomer_is_receiver(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        c, tc = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})
        send(hub, a, {"type": "leave_room"})
        tb.clear()

        send(hub, c, {"type": "join_room", "roomId": "r1"})

        assert tc.of_type("room_joined")[-1]["isInitiator"] is False
        assert tb.of_type("room_ready")[-1]["isInitiator"] is False
        assert tc.of_type("room_ready")[-1]["isInitiator"] is False

    def test_push_requested_when_alone_in_room(self, hub, connect, push):
        a, _ = connect()
        b, _ = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1", "deviceId": "device-a"})
        send(hub, b, {"type": "join_room", "roomId": "r1", "deviceId": "device-b"})

        assert push.waiting == [("r1", "device-a")]


class TestLeaveRoom:
    def test_leave_notifies_peer_and_confirms(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})
        tb.clear()

        send(hub, a, {"type": "leave_room"})

        assert ta.last() == {"type": "left_room", "roomId": "r1"}
        assert tb.messages == [{"type": "peer_left", "message": "Peer left the room", "roomId": "r1"}]
        assert hub.connections.lookup(a).room_id is None
        assert hub.rooms.members("r1") == [b]

    def test_leave_twice_is_idempotent(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, a, {"type": "leave_room"})
        send(hub, a, {"type": "leave_room"})

        assert ta.of_type("left_room") == [
            {"type": "left_room", "roomId": "r1"},
            {"type": "left_room", "roomId": None},
        ]
        assert "r1" not in hub.rooms

    def test_leave_without_joining(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "leave_room"})

        assert ta.last() == {"type": "left_room", "roomId": None}
        assert len(hub.rooms) == 0


class TestSignalRelay:
    def _ready_room(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})
        ta.clear()
        tb.clear()
        return (a, ta), (b, tb)

    @pytest.mark.parametrize("message", [
        {"type": "webrtc_offer", "sdp": "v=0 offer"},
        {"type": "webrtc_answer", "sdp": "v=0 answer"},
        {"type": "ice_candidate", "candidate": {"candidate": "candidate:1 1 UDP", "sdpMLineIndex": 0, "sdpMid": "0"}},
    ])
    def test_relay_reaches_only_the_other_member_verbatim(self, hub, connect, message):
        (a, ta), (b, tb) = self._ready_room(hub, connect)

        send(hub, a, message)

        assert ta.messages == []
        assert tb.messages == [{**message, "from": a, "roomId": "r1"}]

    def test_relay_before_ready_is_rejected(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})

        send(hub, a, {"type": "webrtc_offer", "sdp": "x"})

        assert ta.last() == {"type": "error", "error": "Room not ready"}
        with pytest.raises(RoomNotReady):
            hub.signal_relay(a, "webrtc_offer", {"sdp": "x"})

    def test_relay_outside_room_is_rejected(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "ice_candidate", "candidate": {}})

        assert ta.last() == {"type": "error", "error": "Not in a room"}
        with pytest.raises(NotInRoom):
            hub.signal_relay(a, "ice_candidate", {})

    def test_relay_to_dead_peer_is_dropped_silently(self, hub, connect):
        (a, ta), (b, tb) = self._ready_room(hub, connect)
        tb.is_live = False

        delivered = hub.signal_relay(a, "webrtc_offer", {"type": "webrtc_offer", "sdp": "x"})

        assert delivered == []
        assert ta.messages == []
        assert tb.messages == []


class TestDisconnect:
    def test_disconnect_notifies_peer_with_distinct_event(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})
        tb.clear()

        hub.disconnect(a)

        assert tb.messages == [{"type": "peer_disconnected", "message": "Peer disconnected", "roomId": "r1"}]
        assert a not in hub.connections
        assert hub.rooms.members("r1") == [b]

    def test_disconnect_last_member_removes_room(self, hub, connect):
        a, _ = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})

        hub.disconnect(a)

        assert hub.rooms.occupancy("r1") == 0
        assert "r1" not in hub.rooms

    def test_disconnect_unknown_connection_is_noop(self, hub):
        hub.disconnect("missing")
        assert len(hub.connections) == 0

    def test_reaper_disconnects_dead_transports(self, hub, connect):
        a, ta = connect()
        b, tb = connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})
        send(hub, b, {"type": "join_room", "roomId": "r1"})
        ta.is_live = False
        tb.clear()

        assert hub.reap_stale() == 1

        assert a not in hub.connections
        assert ta.closed
        assert not tb.closed
        assert tb.of_type("peer_disconnected")
        assert hub.reap_stale() == 0


class TestMessageHandling:
    def test_invalid_json_keeps_connection(self, hub, connect):
        a, ta = connect()
        hub.handle_raw(a, "{not json")

        assert ta.last() == {"type": "error", "error": "Invalid JSON format"}
        assert a in hub.connections

    @pytest.mark.parametrize("raw", [b"\xff\xfe", b"not json", None])
    def test_undecodable_frames_are_invalid_json(self, hub, connect, raw):
        a, ta = connect()
        hub.handle_raw(a, raw)

        assert ta.last() == {"type": "error", "error": "Invalid JSON format"}
        assert a in hub.connections

    def test_binary_frame_with_json_is_dispatched(self, hub, connect):
        a, ta = connect()
        hub.handle_raw(a, b'{"type": "ping"}')

        assert ta.last() == {"type": "pong"}

    def test_non_object_message(self, hub, connect):
        a, ta = connect()
        hub.handle_raw(a, "[1, 2]")

        assert ta.last() == {"type": "error", "error": "Invalid message format"}

    def test_ping_pong(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "ping"})

        assert ta.last() == {"type": "pong"}

    def test_unknown_type(self, hub, connect):
        a, ta = connect()
        send(hub, a, {"type": "dance"})

        assert ta.last() == {"type": "error", "error": "Unknown message type: dance"}

    def test_unexpected_error_is_reported_and_contained(self, hub, connect, monkeypatch):
        a, ta = connect()
        b, tb = connect()

        def boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(hub, "leave_room", boom)
        send(hub, a, {"type": "leave_room"})

        assert ta.last() == {"type": "error", "error": "Internal server error"}
        assert tb.messages == [{"type": "connected", "clientId": b}]
        assert a in hub.connections

    def test_stats(self, hub, connect):
        a, _ = connect()
        connect()
        send(hub, a, {"type": "join_room", "roomId": "r1"})

        assert hub.stats() == {"connections": 2, "rooms": 1}
