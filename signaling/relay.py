from typing import Callable, Iterable, List

from errors import TransportUnavailable
from logging_config import get_logger

logger = get_logger(__name__)

SIGNAL_TYPES = ("webrtc_offer", "webrtc_answer", "ice_candidate")


def build_forwarded(kind: str, message: dict, sender_id: str, room_id: str) -> dict:
    """Copy the client's fields untouched and stamp sender and room."""
    forwarded = dict(message)
    forwarded["type"] = kind
    forwarded["from"] = sender_id
    forwarded["roomId"] = room_id
    return forwarded


def _deliver(connection, message: dict):
    if connection is None or not connection.is_live:
        raise TransportUnavailable()
    connection.send(message)


def relay(kind: str, message: dict, sender_id: str, room_id: str,
          recipients: Iterable[str], lookup: Callable) -> List[str]:
    """Forward a signaling message to every other member of a room.

    A recipient whose transport is gone is skipped, not reported to the
    sender; its disconnect notice is already on the way. Returns the ids
    that were sent to.
    """
    forwarded = build_forwarded(kind, message, sender_id, room_id)
    delivered = []
    for recipient_id in recipients:
        try:
            _deliver(lookup(recipient_id), forwarded)
        except TransportUnavailable:
            logger.warning(f"Dropped '{kind}' from {sender_id} in room {room_id}: peer {recipient_id} is not live")
            continue
        delivered.append(recipient_id)
    logger.debug(f"Relayed '{kind}' in room {room_id} from {sender_id} to {len(delivered)} peer(s)")
    return delivered
