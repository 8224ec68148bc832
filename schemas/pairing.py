from pydantic import BaseModel
from typing import List, Optional


class CreatePendingRequest(BaseModel):
    joinid: str
    client1: str
    expiresInSeconds: int
    pushToken: Optional[str] = None
    platform: Optional[str] = None

class CreatePendingResponse(BaseModel):
    ok: bool = True
    exp: str

class AcceptPendingRequest(BaseModel):
    joinid: str
    client2: str
    pushToken: Optional[str] = None
    platform: Optional[str] = None

class CheckPendingRequest(BaseModel):
    joinid: str
    client1: str

class DeletePendingRequest(BaseModel):
    joinid: str
    client1: str

class RoomIdResponse(BaseModel):
    roomid: str

class RoomDetailsResponse(BaseModel):
    roomid: str
    client1: str
    client2: str
    client1PushToken: Optional[str] = None
    client1Platform: Optional[str] = None
    client2PushToken: Optional[str] = None
    client2Platform: Optional[str] = None

class DeleteRoomRequest(BaseModel):
    roomid: str

class PurgeRequest(BaseModel):
    deviceIds: Optional[List[str]] = None
    # Legacy single-id form
    deviceId: Optional[str] = None

class PurgeResponse(BaseModel):
    deviceIdCount: int
    roomsDeleted: int
    pendingsDeleted: int
