import uuid
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Connection:
    """One live client. `room_id` is only set while the client is a room member."""

    id: str
    transport: object
    room_id: Optional[str] = None
    is_initiator: bool = False

    @property
    def is_live(self) -> bool:
        return bool(self.transport.is_live)

    def send(self, message: dict):
        self.transport.send(message)

    def clear_room(self):
        self.room_id = None
        self.is_initiator = False


class ConnectionRegistry:
    """Maps connection ids to their transport and current room."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def register(self, transport) -> str:
        connection_id = str(uuid.uuid4())
        self._connections[connection_id] = Connection(id=connection_id, transport=transport)
        logger.debug(f"Registered connection {connection_id} (total: {len(self._connections)})")
        return connection_id

    def lookup(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def remove(self, connection_id: str):
        # Room membership is the caller's responsibility
        if self._connections.pop(connection_id, None) is not None:
            logger.debug(f"Removed connection {connection_id} (total: {len(self._connections)})")

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def __len__(self) -> int:
        return len(self._connections)
