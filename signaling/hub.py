"""Rendezvous lifecycle: join, leave, relay and disconnect orchestration.

Every public method runs to completion without awaiting, so when they are
called from the event loop each inbound event is applied atomically to both
registries.
"""
import json
from typing import Optional

from errors import InvalidRoom, NotInRoom, RoomFull, RoomNotReady, SignalingError
from logging_config import get_logger
from signaling.connections import Connection, ConnectionRegistry
from signaling.relay import SIGNAL_TYPES, relay
from signaling.rooms import ROOM_CAPACITY, RoomRegistry

logger = get_logger(__name__)

PEER_LEFT = "peer_left"
PEER_DISCONNECTED = "peer_disconnected"

PEER_EVENT_MESSAGES = {
    PEER_LEFT: "Peer left the room",
    PEER_DISCONNECTED: "Peer disconnected",
}


class SignalingHub:
    def __init__(self, push=None):
        self.connections = ConnectionRegistry()
        self.rooms = RoomRegistry()
        self.push = push

    # Transport lifecycle

    def connect(self, transport) -> str:
        connection_id = self.connections.register(transport)
        transport.send({"type": "connected", "clientId": connection_id})
        logger.info(f"New client connected: {connection_id}")
        return connection_id

    def disconnect(self, connection_id: str):
        connection = self.connections.lookup(connection_id)
        if connection is None:
            return
        if connection.room_id:
            self._leave(connection, PEER_DISCONNECTED)
        self.connections.remove(connection_id)
        logger.info(f"Client disconnected: {connection_id}")

    def reap_stale(self) -> int:
        """Close every dead transport and run the disconnect path for it."""
        stale = [connection.id for connection in self.connections if not connection.is_live]
        for connection_id in stale:
            logger.info(f"Reaping stale connection {connection_id}")
            self.connections.lookup(connection_id).transport.close_soon()
            self.disconnect(connection_id)
        if stale:
            logger.info(f"Reaper removed {len(stale)} stale connection(s)")
        return len(stale)

    # Inbound messages

    def handle_raw(self, connection_id: str, raw):
        try:
            message = json.loads(raw)
        except (ValueError, TypeError, RecursionError):
            logger.warning(f"Failed to parse message from {connection_id}")
            self._send(connection_id, {"type": "error", "error": "Invalid JSON format"})
            return
        if not isinstance(message, dict):
            self._send(connection_id, {"type": "error", "error": "Invalid message format"})
            return
        self.dispatch(connection_id, message)

    def dispatch(self, connection_id: str, message: dict):
        message_type = message.get("type")
        try:
            if message_type == "join_room":
                payload = message.get("payload") if isinstance(message.get("payload"), dict) else {}
                room_id = message.get("roomId", payload.get("roomId"))
                device_id = message.get("deviceId", payload.get("deviceId"))
                self.join_room(connection_id, room_id, device_id)
            elif message_type == "leave_room":
                self.leave_room(connection_id)
            elif message_type in SIGNAL_TYPES:
                self.signal_relay(connection_id, message_type, message)
            elif message_type == "ping":
                self._send(connection_id, {"type": "pong"})
            else:
                logger.warning(f"Unknown message type received from {connection_id}: {message_type}")
                self._send(connection_id, {"type": "error", "error": f"Unknown message type: {message_type}"})
        except RoomFull as e:
            logger.info(f"Join rejected for {connection_id}: room {e.room_id} is full")
            self._send(connection_id, {"type": "room_full", "error": e.message, "roomId": e.room_id})
        except SignalingError as e:
            logger.info(f"Rejected '{message_type}' from {connection_id}: {e.message}")
            self._send(connection_id, {"type": "error", "error": e.message})
        except Exception as e:
            logger.error(f"Error handling '{message_type}' from {connection_id}: {e}", exc_info=True)
            self._send(connection_id, {"type": "error", "error": "Internal server error"})

    # Operations

    def join_room(self, connection_id: str, room_id, device_id: Optional[str] = None):
        if not isinstance(room_id, str) or not room_id:
            raise InvalidRoom()
        connection = self.connections.lookup(connection_id)
        if connection is None:
            logger.debug(f"join_room for unknown connection {connection_id}")
            return

        if connection.room_id and connection.room_id != room_id:
            logger.info(f"Client {connection_id} switching from room {connection.room_id} to {room_id}")
            self._leave(connection, PEER_LEFT)

        result = self.rooms.join(room_id, connection_id)
        connection.room_id = room_id
        connection.is_initiator = result.is_initiator
        ready = result.occupancy == ROOM_CAPACITY
        connection.send({
            "type": "room_joined",
            "roomId": room_id,
            "userCount": result.occupancy,
            "isInitiator": result.is_initiator,
            "ready": ready,
        })
        logger.info(f"Client {connection_id} joined room {room_id} ({result.occupancy}/{ROOM_CAPACITY})")

        if not result.added:
            return
        if ready:
            self._announce_ready(room_id)
        elif self.push is not None:
            self.push.room_waiting(room_id, device_id)

    def leave_room(self, connection_id: str):
        connection = self.connections.lookup(connection_id)
        if connection is None:
            return
        room_id = connection.room_id
        if room_id:
            self._leave(connection, PEER_LEFT)
        connection.send({"type": "left_room", "roomId": room_id})

    def signal_relay(self, connection_id: str, kind: str, message: dict) -> list:
        connection = self.connections.lookup(connection_id)
        if connection is None or not connection.room_id:
            raise NotInRoom()
        room_id = connection.room_id
        if self.rooms.occupancy(room_id) != ROOM_CAPACITY:
            raise RoomNotReady()
        return relay(kind, message, connection_id, room_id,
                     self.rooms.peers_of(room_id, connection_id), self.connections.lookup)

    def stats(self) -> dict:
        return {"connections": len(self.connections), "rooms": len(self.rooms)}

    # Internals

    def _announce_ready(self, room_id: str):
        # Roles come from the registry's arrival order at this moment
        members = self.rooms.members(room_id)
        for member_id in members:
            member = self.connections.lookup(member_id)
            if member is None:
                continue
            member.is_initiator = self.rooms.is_initiator(room_id, member_id)
            member.send({
                "type": "room_ready",
                "roomId": room_id,
                "userCount": len(members),
                "isInitiator": member.is_initiator,
            })
        logger.info(f"Room {room_id} is ready")

    def _leave(self, connection: Connection, peer_event: str):
        room_id = connection.room_id
        remaining = self.rooms.leave(room_id, connection.id)
        connection.clear_room()
        for peer_id in self.rooms.members(room_id):
            self._send(peer_id, {"type": peer_event, "message": PEER_EVENT_MESSAGES[peer_event], "roomId": room_id})
        logger.info(f"Client {connection.id} removed from room {room_id} ({remaining} remaining)")

    def _send(self, connection_id: str, message: dict):
        connection = self.connections.lookup(connection_id)
        if connection is not None:
            connection.send(message)
