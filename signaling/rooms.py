from dataclasses import dataclass, field
from typing import Dict, List

from errors import RoomFull
from logging_config import get_logger

logger = get_logger(__name__)

ROOM_CAPACITY = 2


@dataclass
class Room:
    """A live room. `members` is ordered by arrival; `founder` is the connection
    that created the room and stays recorded after it leaves."""

    id: str
    founder: str
    members: List[str] = field(default_factory=list)

    @property
    def occupancy(self) -> int:
        return len(self.members)

    def is_initiator(self, connection_id: str) -> bool:
        return bool(self.members) and self.members[0] == connection_id and connection_id == self.founder


@dataclass(frozen=True)
class JoinResult:
    room_id: str
    is_initiator: bool
    occupancy: int
    created: bool
    added: bool = True


class RoomRegistry:
    """Owns live room membership. Occupancy never exceeds ROOM_CAPACITY and
    empty rooms are deleted immediately."""

    def __init__(self, capacity: int = ROOM_CAPACITY):
        self.capacity = capacity
        self._rooms: Dict[str, Room] = {}

    def join(self, room_id: str, connection_id: str) -> JoinResult:
        room = self._rooms.get(room_id)
        if room is not None and connection_id in room.members:
            return JoinResult(room_id, room.is_initiator(connection_id), room.occupancy, False, added=False)
        if room is not None and room.occupancy >= self.capacity:
            raise RoomFull(room_id)

        created = room is None
        if created:
            room = Room(id=room_id, founder=connection_id)
            self._rooms[room_id] = room
            logger.info(f"Created new room: {room_id}")
        room.members.append(connection_id)
        logger.debug(f"Connection {connection_id} joined room {room_id} ({room.occupancy}/{self.capacity})")
        return JoinResult(room_id, room.is_initiator(connection_id), room.occupancy, created)

    def leave(self, room_id: str, connection_id: str) -> int:
        """Remove a member and return the remaining occupancy. Absent rooms or
        members are a no-op."""
        room = self._rooms.get(room_id)
        if room is None:
            return 0
        if connection_id in room.members:
            room.members.remove(connection_id)
            logger.debug(f"Connection {connection_id} left room {room_id} ({room.occupancy}/{self.capacity})")
        if not room.members:
            del self._rooms[room_id]
            logger.info(f"Room is now empty and has been deleted: {room_id}")
            return 0
        return room.occupancy

    def peers_of(self, room_id: str, connection_id: str) -> List[str]:
        room = self._rooms.get(room_id)
        if room is None:
            return []
        return [member for member in room.members if member != connection_id]

    def occupancy(self, room_id: str) -> int:
        room = self._rooms.get(room_id)
        return room.occupancy if room else 0

    def members(self, room_id: str) -> List[str]:
        room = self._rooms.get(room_id)
        return list(room.members) if room else []

    def is_initiator(self, room_id: str, connection_id: str) -> bool:
        room = self._rooms.get(room_id)
        return room.is_initiator(connection_id) if room else False

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
