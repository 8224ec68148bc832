"""Error taxonomy shared by the live rendezvous core and the pairing store.

Every error carries the HTTP status and the wire-level error code used when
it is reported back to a caller. None of them is fatal to a connection.
"""


class SignalingError(Exception):
    status_code = 500
    code = "internal_error"
    message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidInput(SignalingError):
    status_code = 400
    code = "invalid_request"
    message = "Invalid request"


class InvalidRoom(InvalidInput):
    message = "Invalid roomId"


class InvalidDuration(InvalidInput):
    code = "invalid_duration"
    message = "expiresInSeconds must be between 1 and 86400"


class NotFound(SignalingError):
    status_code = 404
    code = "not_found"
    message = "Not found"


class NotFoundOrExpired(NotFound):
    code = "not_found_or_expired"
    message = "Join code not found or expired"


class Conflict(SignalingError):
    status_code = 409
    code = "conflict"
    message = "Join code already accepted"


class DuplicateJoinCode(Conflict):
    code = "duplicate_joinid"
    message = "Join code already in use"


class RoomFull(SignalingError):
    status_code = 409
    code = "room_full"
    message = "Room is full"

    def __init__(self, room_id: str):
        super().__init__()
        self.room_id = room_id


class RoomNotReady(SignalingError):
    status_code = 409
    code = "room_not_ready"
    message = "Room not ready"


class NotInRoom(SignalingError):
    status_code = 409
    code = "not_in_room"
    message = "Not in a room"


class TransportUnavailable(SignalingError):
    status_code = 410
    code = "transport_unavailable"
    message = "Peer transport is not live"


class StoreUnavailable(SignalingError):
    status_code = 500
    code = "store_unavailable"
    message = "Storage backend unavailable"
