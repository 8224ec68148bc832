from fastapi import APIRouter, Depends, Query, Request, Response

from backend import PairingStore, get_pairing_store
from errors import InvalidInput, NotFound
from logging_config import get_logger
from schemas.pairing import (
    AcceptPendingRequest,
    CheckPendingRequest,
    CreatePendingRequest,
    CreatePendingResponse,
    DeletePendingRequest,
    DeleteRoomRequest,
    PurgeRequest,
    PurgeResponse,
    RoomDetailsResponse,
    RoomIdResponse,
)

logger = get_logger(__name__)

pairing_router = APIRouter(prefix="/api", tags=["pairing"])


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@pairing_router.post("/pending", status_code=201, response_model=CreatePendingResponse)
async def create_pending(body: CreatePendingRequest, request: Request, store: PairingStore = Depends(get_pairing_store)):
    # Body: { "joinid": "123456", "client1": "device-a", "expiresInSeconds": 300 }
    # Response 201: { "ok": true, "exp": "2025-11-17T12:34:56.000Z" }
    logger.info(f"Create pending request from {_client_host(request)}: joinid={body.joinid}, ttl={body.expiresInSeconds}s")
    expires_at = store.create_pending(body.joinid, body.client1, body.expiresInSeconds,
                                      push_token=body.pushToken, platform=body.platform)
    return CreatePendingResponse(exp=expires_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"))


@pairing_router.post("/pending/accept", response_model=RoomIdResponse)
async def accept_pending(body: AcceptPendingRequest, request: Request, store: PairingStore = Depends(get_pairing_store)):
    # Body: { "joinid": "123456", "client2": "device-b" }
    # Response 200: { "roomid": "..." } | 404 not_found_or_expired | 409 conflict
    logger.info(f"Accept pending request from {_client_host(request)}: joinid={body.joinid}")
    roomid = store.accept_pending(body.joinid, body.client2, push_token=body.pushToken, platform=body.platform)
    return RoomIdResponse(roomid=roomid)


@pairing_router.post("/pending/check", response_model=RoomIdResponse,
                     responses={204: {"description": "Still waiting for an acceptor"}})
async def check_pending(body: CheckPendingRequest, store: PairingStore = Depends(get_pairing_store)):
    pending = store.check_pending(body.joinid, body.client1)
    if not pending.accepted:
        logger.debug(f"Pending {body.joinid} still waiting")
        return Response(status_code=204)
    logger.info(f"Pending {body.joinid} ready with room {pending.roomid}")
    return RoomIdResponse(roomid=pending.roomid)


@pairing_router.post("/pending/delete")
async def delete_pending(body: DeletePendingRequest, store: PairingStore = Depends(get_pairing_store)):
    # Creator confirms it has stored the roomid; safe to retry
    deleted = store.delete_pending(body.joinid, body.client1)
    return {"ok": True, "deleted": deleted}


@pairing_router.get("/room", response_model=RoomDetailsResponse)
async def get_room(roomid: str = Query(..., min_length=1), store: PairingStore = Depends(get_pairing_store)):
    room = store.get_room(roomid)
    if room is None:
        logger.warning(f"Room details failed: Room {roomid} not found")
        raise NotFound("Room not found")
    return RoomDetailsResponse(**room.to_dict())


@pairing_router.post("/room/delete")
async def delete_room(body: DeleteRoomRequest, store: PairingStore = Depends(get_pairing_store)):
    deleted = store.delete_room(body.roomid)
    return {"ok": True, "deleted": deleted}


@pairing_router.post("/user/purge", response_model=PurgeResponse)
async def purge_user(body: PurgeRequest, request: Request, store: PairingStore = Depends(get_pairing_store)):
    # Preferred: { "deviceIds": ["a", "b"] }; legacy: { "deviceId": "a" }
    if body.deviceIds is not None:
        device_ids = body.deviceIds
    elif body.deviceId is not None:
        device_ids = [body.deviceId]
    else:
        raise InvalidInput("deviceIds or deviceId is required")

    logger.info(f"Purge request from {_client_host(request)} for {len(device_ids)} device id(s)")
    result = store.purge_by_identity(device_ids)
    return PurgeResponse(deviceIdCount=len(device_ids), **result)
