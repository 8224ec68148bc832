import functools
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import redis
from redis.exceptions import RedisError

from constants import (
    MAX_PENDING_SECONDS,
    MIN_PENDING_SECONDS,
    REDIS_DB,
    REDIS_HOST,
    REDIS_PASSWORD,
    REDIS_PORT,
    ROOM_ID_LENGTH,
)
from errors import Conflict, DuplicateJoinCode, InvalidDuration, InvalidInput, NotFoundOrExpired, StoreUnavailable
from logging_config import get_logger
from redis_keys import (
    REDIS_CLIENT_PENDINGS_KEY,
    REDIS_CLIENT_ROOMS_KEY,
    REDIS_PENDING_EXPIRY_KEY,
    REDIS_PENDING_KEY,
    REDIS_ROOM_KEY,
)

logger = get_logger(__name__)

SIDES = ("client1", "client2")


def create_redis_client() -> redis.Redis:
    try:
        client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB,
                             decode_responses=True)
        client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise


def _to_epoch(redis_time) -> float:
    seconds, microseconds = redis_time
    return int(seconds) + int(microseconds) / 1_000_000


def _to_mapping(data: dict) -> dict:
    # Redis hashes cannot hold None
    return {k: str(v) for k, v in data.items() if v is not None}


def _store_errors(fn):
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except RedisError as e:
            logger.error(f"Redis error in {fn.__name__}: {e}", exc_info=True)
            raise StoreUnavailable() from e
    return wrapper


@dataclass(frozen=True)
class Peer:
    client_id: str
    push_token: Optional[str] = None
    platform: Optional[str] = None


@dataclass
class Pending:
    joinid: str
    client1: str
    exp: float
    client2: Optional[str] = None
    roomid: Optional[str] = None
    client1_push_token: Optional[str] = None
    client1_platform: Optional[str] = None
    client2_push_token: Optional[str] = None
    client2_platform: Optional[str] = None

    @classmethod
    def from_hash(cls, data: dict) -> "Pending":
        return cls(
            joinid=data["joinid"],
            client1=data["client1"],
            exp=float(data["exp"]),
            client2=data.get("client2") or None,
            roomid=data.get("roomid") or None,
            client1_push_token=data.get("client1_push_token"),
            client1_platform=data.get("client1_platform"),
            client2_push_token=data.get("client2_push_token"),
            client2_platform=data.get("client2_platform"),
        )

    @property
    def accepted(self) -> bool:
        return self.client2 is not None


@dataclass
class DurableRoom:
    roomid: str
    client1: str
    client2: str
    created_at: Optional[float] = None
    client1_push_token: Optional[str] = None
    client1_platform: Optional[str] = None
    client2_push_token: Optional[str] = None
    client2_platform: Optional[str] = None

    @classmethod
    def from_hash(cls, data: dict) -> "DurableRoom":
        return cls(
            roomid=data["roomid"],
            client1=data["client1"],
            client2=data["client2"],
            created_at=float(data["created_at"]) if data.get("created_at") else None,
            client1_push_token=data.get("client1_push_token"),
            client1_platform=data.get("client1_platform"),
            client2_push_token=data.get("client2_push_token"),
            client2_platform=data.get("client2_platform"),
        )

    def peers(self) -> List[Peer]:
        return [
            Peer(self.client1, self.client1_push_token, self.client1_platform),
            Peer(self.client2, self.client2_push_token, self.client2_platform),
        ]

    def to_dict(self) -> dict:
        return {
            "roomid": self.roomid,
            "client1": self.client1,
            "client2": self.client2,
            "client1PushToken": self.client1_push_token,
            "client1Platform": self.client1_platform,
            "client2PushToken": self.client2_push_token,
            "client2Platform": self.client2_platform,
        }


class PairingStore:
    """Durable join-code -> room promotion on Redis.

    Every read-check-write runs as one WATCH/MULTI/EXEC transaction and takes
    "now" from the Redis server clock inside that transaction.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client
        logger.info("Initializing PairingStore")

    # Pendings

    @_store_errors
    def create_pending(self, joinid: str, client1: str, duration_seconds: int,
                       push_token: Optional[str] = None, platform: Optional[str] = None) -> datetime:
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int) \
                or not MIN_PENDING_SECONDS <= duration_seconds <= MAX_PENDING_SECONDS:
            raise InvalidDuration()
        if not joinid or not client1:
            raise InvalidInput("joinid and client1 are required")

        key = REDIS_PENDING_KEY.format(joinid=joinid)

        def _create(pipe):
            now = _to_epoch(pipe.time())
            existing = pipe.hgetall(key)
            if existing and float(existing["exp"]) > now:
                raise DuplicateJoinCode()
            exp = now + duration_seconds
            pipe.multi()
            if existing:
                self._queue_pending_delete(pipe, joinid, existing)
            pipe.hset(key, mapping=_to_mapping({
                "joinid": joinid,
                "client1": client1,
                "exp": repr(exp),
                "client1_push_token": push_token,
                "client1_platform": platform,
            }))
            pipe.zadd(REDIS_PENDING_EXPIRY_KEY, {joinid: exp})
            pipe.sadd(REDIS_CLIENT_PENDINGS_KEY.format(client_id=client1), joinid)
            return exp

        exp = self.redis_client.transaction(_create, key, value_from_callable=True)
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
        logger.info(f"Created pending {joinid} for {client1}, expires at {expires_at.isoformat()}")
        return expires_at

    @_store_errors
    def accept_pending(self, joinid: str, client2: str,
                       push_token: Optional[str] = None, platform: Optional[str] = None) -> str:
        if not joinid or not client2:
            raise InvalidInput("joinid and client2 are required")
        self.sweep_expired()

        key = REDIS_PENDING_KEY.format(joinid=joinid)

        def _accept(pipe):
            now = _to_epoch(pipe.time())
            data = pipe.hgetall(key)
            if not data or float(data["exp"]) <= now:
                raise NotFoundOrExpired()
            if data.get("client2"):
                raise Conflict()
            roomid = self._generate_room_id(joinid, client2)
            client1 = data["client1"]
            pipe.multi()
            pipe.hset(REDIS_ROOM_KEY.format(roomid=roomid), mapping=_to_mapping({
                "roomid": roomid,
                "client1": client1,
                "client2": client2,
                "created_at": repr(now),
                "client1_push_token": data.get("client1_push_token"),
                "client1_platform": data.get("client1_platform"),
                "client2_push_token": push_token,
                "client2_platform": platform,
            }))
            pipe.sadd(REDIS_CLIENT_ROOMS_KEY.format(client_id=client1), roomid)
            pipe.sadd(REDIS_CLIENT_ROOMS_KEY.format(client_id=client2), roomid)
            pipe.hset(key, mapping=_to_mapping({
                "client2": client2,
                "roomid": roomid,
                "client2_push_token": push_token,
                "client2_platform": platform,
            }))
            pipe.sadd(REDIS_CLIENT_PENDINGS_KEY.format(client_id=client2), joinid)
            return roomid

        roomid = self.redis_client.transaction(_accept, key, value_from_callable=True)
        logger.info(f"Pending {joinid} accepted by {client2}, created room {roomid}")
        return roomid

    @_store_errors
    def check_pending(self, joinid: str, client1: str) -> Pending:
        """Return the creator's pending. `accepted` tells whether a room exists yet."""
        self.sweep_expired()
        pipe = self.redis_client.pipeline()
        pipe.time()
        pipe.hgetall(REDIS_PENDING_KEY.format(joinid=joinid))
        redis_time, data = pipe.execute()
        if not data or data.get("client1") != client1 or float(data["exp"]) <= _to_epoch(redis_time):
            raise NotFoundOrExpired()
        return Pending.from_hash(data)

    @_store_errors
    def delete_pending(self, joinid: str, client1: str) -> int:
        key = REDIS_PENDING_KEY.format(joinid=joinid)

        def _delete(pipe):
            data = pipe.hgetall(key)
            if not data or data.get("client1") != client1:
                return 0
            pipe.multi()
            self._queue_pending_delete(pipe, joinid, data)
            return 1

        deleted = self.redis_client.transaction(_delete, key, value_from_callable=True)
        logger.info(f"Delete pending {joinid} by {client1}: {deleted} removed")
        return deleted

    @_store_errors
    def sweep_expired(self) -> int:
        now = _to_epoch(self.redis_client.time())
        expired = self.redis_client.zrangebyscore(REDIS_PENDING_EXPIRY_KEY, "-inf", now)
        deleted = 0
        for joinid in expired:
            deleted += self._delete_if_expired(joinid)
        if deleted:
            logger.info(f"Removed {deleted} expired pending(s)")
        return deleted

    def _delete_if_expired(self, joinid: str) -> int:
        key = REDIS_PENDING_KEY.format(joinid=joinid)

        def _sweep(pipe):
            now = _to_epoch(pipe.time())
            data = pipe.hgetall(key)
            if not data:
                pipe.multi()
                pipe.zrem(REDIS_PENDING_EXPIRY_KEY, joinid)
                return 0
            if float(data["exp"]) > now:
                # Re-created with a new expiry since the scan
                return 0
            pipe.multi()
            self._queue_pending_delete(pipe, joinid, data)
            return 1

        return self.redis_client.transaction(_sweep, key, value_from_callable=True)

    # Rooms

    @_store_errors
    def get_room(self, roomid: str) -> Optional[DurableRoom]:
        data = self.redis_client.hgetall(REDIS_ROOM_KEY.format(roomid=roomid))
        if not data:
            logger.debug(f"Room {roomid} not found in Redis")
            return None
        return DurableRoom.from_hash(data)

    @_store_errors
    def delete_room(self, roomid: str) -> int:
        deleted = self._delete_room_record(roomid)
        logger.info(f"Delete room {roomid}: {deleted} removed")
        return deleted

    @_store_errors
    def clear_push_token(self, roomid: str, token: str) -> int:
        key = REDIS_ROOM_KEY.format(roomid=roomid)

        def _clear(pipe):
            data = pipe.hgetall(key)
            sides = [side for side in SIDES if data.get(f"{side}_push_token") == token]
            if not sides:
                return 0
            pipe.multi()
            for side in sides:
                pipe.hdel(key, f"{side}_push_token", f"{side}_platform")
            return len(sides)

        return self.redis_client.transaction(_clear, key, value_from_callable=True)

    # Privacy

    @_store_errors
    def purge_by_identity(self, client_ids: List[str]) -> dict:
        if not isinstance(client_ids, list) or not client_ids \
                or any(not isinstance(c, str) or not c.strip() for c in client_ids):
            raise InvalidInput("deviceIds must be a non-empty list of non-empty strings")

        rooms_deleted = 0
        pendings_deleted = 0
        # Accepts can commit while we delete, so keep going until the indices stay empty
        while True:
            lookup = self.redis_client.pipeline(transaction=False)
            for client_id in client_ids:
                lookup.smembers(REDIS_CLIENT_ROOMS_KEY.format(client_id=client_id))
                lookup.smembers(REDIS_CLIENT_PENDINGS_KEY.format(client_id=client_id))
            results = lookup.execute()

            roomids = set()
            joinids = set()
            for index in range(0, len(results), 2):
                roomids.update(results[index])
                joinids.update(results[index + 1])
            if not roomids and not joinids:
                break

            rooms_deleted += sum(self._delete_room_record(roomid) for roomid in roomids)
            pendings_deleted += sum(self._delete_pending_record(joinid) for joinid in joinids)

            # Only unindex what was seen; entries added meanwhile are picked up next pass
            cleanup = self.redis_client.pipeline()
            for client_id in client_ids:
                if roomids:
                    cleanup.srem(REDIS_CLIENT_ROOMS_KEY.format(client_id=client_id), *roomids)
                if joinids:
                    cleanup.srem(REDIS_CLIENT_PENDINGS_KEY.format(client_id=client_id), *joinids)
            cleanup.execute()

        logger.info(f"Purged {len(client_ids)} identities: rooms={rooms_deleted}, pendings={pendings_deleted}")
        return {"roomsDeleted": rooms_deleted, "pendingsDeleted": pendings_deleted}

    # Internals

    def _generate_room_id(self, joinid: str, client2: str) -> str:
        seed = f"{joinid}:{client2}:{secrets.token_hex(16)}"
        return hashlib.sha256(seed.encode()).hexdigest()[:ROOM_ID_LENGTH]

    def _queue_pending_delete(self, pipe, joinid: str, data: dict):
        pipe.delete(REDIS_PENDING_KEY.format(joinid=joinid))
        pipe.zrem(REDIS_PENDING_EXPIRY_KEY, joinid)
        for side in SIDES:
            if data.get(side):
                pipe.srem(REDIS_CLIENT_PENDINGS_KEY.format(client_id=data[side]), joinid)

    def _delete_pending_record(self, joinid: str) -> int:
        data = self.redis_client.hgetall(REDIS_PENDING_KEY.format(joinid=joinid))
        pipe = self.redis_client.pipeline()
        self._queue_pending_delete(pipe, joinid, data)
        return pipe.execute()[0]

    def _delete_room_record(self, roomid: str) -> int:
        key = REDIS_ROOM_KEY.format(roomid=roomid)
        data = self.redis_client.hgetall(key)
        pipe = self.redis_client.pipeline()
        pipe.delete(key)
        for side in SIDES:
            if data.get(side):
                pipe.srem(REDIS_CLIENT_ROOMS_KEY.format(client_id=data[side]), roomid)
        return pipe.execute()[0]


_pairing_store: Optional[PairingStore] = None


def get_pairing_store() -> PairingStore:
    global _pairing_store
    if _pairing_store is None:
        _pairing_store = PairingStore(create_redis_client())
    return _pairing_store
