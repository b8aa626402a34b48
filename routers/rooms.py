from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import CreateRoomRequest, RoomSnapshot, RoomDetailsResponse, ArchivedRoomResponse
from errors import ChatError, ErrorCode, StorageError
from relay.hub import ChatHub
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])

# Domain error code -> HTTP status for the REST view of the relay
STATUS_BY_CODE = {
    ErrorCode.ROOM_NOT_FOUND: 404,
    ErrorCode.ROOM_NOT_ARCHIVED: 409,
    ErrorCode.ROOM_NAME_REQUIRED: 400,
    ErrorCode.INVALID_MAX_PARTICIPANTS: 400,
}


def get_hub(request: Request) -> ChatHub:
    return request.app.state.hub


def raise_http(e: Exception):
    if isinstance(e, ChatError):
        raise HTTPException(status_code=STATUS_BY_CODE.get(e.code, 400), detail={"code": e.code.value, "reason": e.reason})
    if isinstance(e, StorageError):
        raise HTTPException(status_code=503, detail={"code": ErrorCode.STORAGE_UNAVAILABLE.value, "reason": "Storage is unavailable"})
    raise e


@rooms_router.get("/", response_model=list[RoomSnapshot])
async def list_active_rooms(request: Request):
    hub = get_hub(request)
    try:
        return hub.broadcaster.active_rooms()
    except StorageError as e:
        raise_http(e)


@rooms_router.post("/", response_model=RoomSnapshot, status_code=201)
async def create_room(room: CreateRoomRequest, request: Request):
    # { "name": "General", "capacity": 5, "creator": "<userId>", "isPrivate": false }
    # Response 201: the new room snapshot; every socket also receives allActiveRooms
    logger.info(f"Room creation request from {request.client.host if request.client else 'unknown'}, name: {room.name}, capacity: {room.capacity}")
    hub = get_hub(request)
    try:
        created = hub.rooms.create_room(room.name, room.capacity, room.creator, is_private=room.isPrivate)
    except (ChatError, StorageError) as e:
        logger.warning(f"Room creation failed: {e}")
        raise_http(e)
    return hub.broadcaster.room_snapshot(created)


@rooms_router.get("/archived", response_model=list[RoomSnapshot])
async def list_archived_rooms(request: Request):
    hub = get_hub(request)
    try:
        return hub.broadcaster.archived_rooms()
    except StorageError as e:
        raise_http(e)


@rooms_router.get("/archived/{room_id}", response_model=ArchivedRoomResponse)
async def get_archived_room(room_id: int, request: Request):
    """Archived room metadata with its full message history, oldest first."""
    hub = get_hub(request)
    try:
        room, messages = hub.rooms.archived_room(room_id)
    except (ChatError, StorageError) as e:
        logger.warning(f"Archived room {room_id} lookup failed: {e}")
        raise_http(e)
    return ArchivedRoomResponse(room=hub.broadcaster.room_snapshot(room), messages=messages)


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: int, request: Request):
    """
    Get room details including who is connected right now.

    Returns:
    - room: snapshot with participantCount, capacity, creator, archived
    - clients: userId and nickname of every connection in the room
    """
    hub = get_hub(request)
    try:
        room = hub.store.get_room(room_id)
    except StorageError as e:
        raise_http(e)
    if room is None:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail={"code": ErrorCode.ROOM_NOT_FOUND.value, "reason": f"Room {room_id} does not exist"})

    clients = [] if room.archived else hub.presence.clients(room_id)
    logger.info(f"Room details retrieved for {room_id}: {len(clients)} connected")
    return RoomDetailsResponse(room=hub.broadcaster.room_snapshot(room), clients=clients)
