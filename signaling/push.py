"""Best-effort push notification hook.

Delivery itself (APNs, FCM) lives outside this service. The hub only asks the
dispatcher to tell the other peer of a durable room that someone is waiting;
whatever happens afterwards never affects rendezvous state.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol, Set

from constants import PUSH_WAITING_MESSAGE
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PushOutcome:
    success: bool
    skipped: bool = False
    should_purge_token: bool = False
    reason: Optional[str] = None


class PushNotifier(Protocol):
    def notify(self, token: str, platform: Optional[str], room_id: str, message: str) -> PushOutcome:
        ...


class LoggingPushNotifier:
    """Used when no delivery provider is configured."""

    def notify(self, token: str, platform: Optional[str], room_id: str, message: str) -> PushOutcome:
        logger.info(f"Push delivery not configured, skipping {platform or 'unknown'} token {token[:16]}... for room {room_id}")
        return PushOutcome(success=False, skipped=True, reason="not_configured")


class PushDispatcher:
    """Schedules push notifications as background tasks on the running loop."""

    def __init__(self, store_provider, notifier: PushNotifier = None, message: str = PUSH_WAITING_MESSAGE):
        self._store_provider = store_provider
        self.notifier = notifier or LoggingPushNotifier()
        self.message = message
        self._tasks: Set[asyncio.Task] = set()

    def room_waiting(self, room_id: str, device_id: Optional[str]):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop, skipping push for room {room_id}")
            return
        task = loop.create_task(self._notify_waiting(room_id, device_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _notify_waiting(self, room_id: str, device_id: Optional[str]):
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.notify_waiting, room_id, device_id)
        except Exception as e:
            logger.error(f"Push notification for room {room_id} failed: {e}", exc_info=True)

    def notify_waiting(self, room_id: str, device_id: Optional[str]) -> int:
        """Notify every peer of the durable room other than `device_id`.
        Returns the number of successful deliveries."""
        store = self._store_provider()
        room = store.get_room(room_id)
        if room is None:
            logger.debug(f"Room {room_id} has no durable record, no push sent")
            return 0

        delivered = 0
        for peer in room.peers():
            if peer.client_id == device_id or not peer.push_token:
                continue
            outcome = self.notifier.notify(peer.push_token, peer.platform, room_id, self.message)
            if outcome.success:
                delivered += 1
                logger.info(f"Push sent to {peer.client_id} for room {room_id}")
            elif outcome.should_purge_token:
                logger.warning(f"Push token for {peer.client_id} rejected ({outcome.reason}), removing it")
                store.clear_push_token(room_id, peer.push_token)
            elif not outcome.skipped:
                logger.warning(f"Push to {peer.client_id} for room {room_id} failed: {outcome.reason}")
        return delivered
