"""Wire frames exchanged over ``/ws/chat``.

Every frame is one JSON object with a ``type`` discriminator. Inbound frames
are validated into the models below; outbound frames are built by the small
helpers at the bottom so the hub never assembles payload dicts by hand.
"""
import json
from pydantic import BaseModel, ValidationError
from typing import Any, Iterable, Literal, Optional

from errors import ChatError, CloseCode, ErrorCode, SuccessCode
from schemas.rooms import ConnectedClient, Message, RoomSnapshot


# =============================================================================
# Inbound (client -> server)
# =============================================================================


class AuthFrame(BaseModel):
    type: Literal["auth"]
    # checked by the auth gate so a bad identity maps to UNAUTHORIZED
    userId: Optional[Any] = None


class RequestUserIdFrame(BaseModel):
    type: Literal["requestUserId"]


class GetAllRoomsFrame(BaseModel):
    type: Literal["getAllRooms"]


class GetAllArchivedRoomsFrame(BaseModel):
    type: Literal["getAllArchivedRooms"]


class GetArchivedRoomFrame(BaseModel):
    type: Literal["getArchivedRoom"]
    roomId: int


class JoinRoomFrame(BaseModel):
    type: Literal["joinRoom"]
    roomId: int
    nickname: Optional[str] = None
    # display color shown next to the nickname, e.g. "#ff8800"
    color: Optional[str] = None


class LeaveRoomFrame(BaseModel):
    type: Literal["leaveRoom"]
    # omitted: leave every joined room
    roomId: Optional[int] = None


class SendMessageFrame(BaseModel):
    type: Literal["sendMessage"]
    roomId: int
    content: Optional[Any] = None


class CreateRoomFrame(BaseModel):
    type: Literal["createRoom"]
    name: Optional[str] = None
    capacity: Optional[Any] = None
    # private rooms are joinable by id but never listed
    isPrivate: bool = False


class ArchiveRoomFrame(BaseModel):
    type: Literal["archiveRoom"]
    roomId: int


INBOUND_FRAMES = {
    "auth": AuthFrame,
    "requestUserId": RequestUserIdFrame,
    "getAllRooms": GetAllRoomsFrame,
    "getAllArchivedRooms": GetAllArchivedRoomsFrame,
    "getArchivedRoom": GetArchivedRoomFrame,
    "joinRoom": JoinRoomFrame,
    "leaveRoom": LeaveRoomFrame,
    "sendMessage": SendMessageFrame,
    "createRoom": CreateRoomFrame,
    "archiveRoom": ArchiveRoomFrame,
}


def parse_frame(raw: str) -> BaseModel:
    """Decode one text frame into its inbound model.

    Raises:
        ChatError: INVALID_JSON for undecodable or non-object frames,
            UNKNOWN_TYPE for a missing or unrecognised ``type``,
            INVALID_PAYLOAD when the fields do not validate.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        raise ChatError(ErrorCode.INVALID_JSON, "Frame is not valid JSON")
    if not isinstance(data, dict):
        raise ChatError(ErrorCode.INVALID_JSON, "Frame must be a JSON object")

    frame_type = data.get("type")
    model = INBOUND_FRAMES.get(frame_type) if isinstance(frame_type, str) else None
    if model is None:
        raise ChatError(ErrorCode.UNKNOWN_TYPE, f"Unknown frame type: {frame_type!r}")

    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ChatError(ErrorCode.INVALID_PAYLOAD, f"Invalid fields for {frame_type}: {fields}")


# =============================================================================
# Outbound (server -> client)
# =============================================================================


def _dump(items: Iterable[BaseModel]) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


def auth_ok(user_id: str) -> dict:
    return {"type": "auth_ok", "userId": user_id}


def user_id_issued(user_id: str) -> dict:
    return {"type": "userIdIssued", "userId": user_id}


def error(code: ErrorCode, reason: Optional[str] = None) -> dict:
    return {"type": "error", "code": code.value, "reason": reason or code.value}


def success(code: SuccessCode, **extra) -> dict:
    return {"type": "success", "code": code.value, **extra}


def all_active_rooms(rooms: Iterable[RoomSnapshot]) -> dict:
    return {"type": "allActiveRooms", "rooms": _dump(rooms)}


def all_archived_rooms(rooms: Iterable[RoomSnapshot]) -> dict:
    return {"type": "allArchivedRooms", "rooms": _dump(rooms)}


def archived_room_data(room: RoomSnapshot, messages: Iterable[Message]) -> dict:
    return {"type": "archivedRoomData", "room": room.model_dump(mode="json"), "messages": _dump(messages)}


def room_data(room: RoomSnapshot) -> dict:
    return {"type": "roomData", "room": room.model_dump(mode="json")}


def room_connected_clients(room_id: int, clients: Iterable[ConnectedClient]) -> dict:
    return {"type": "roomConnectedClients", "roomId": room_id, "clients": _dump(clients)}


def room_history(room_id: int, messages: Iterable[Message]) -> dict:
    return {"type": "roomHistory", "roomId": room_id, "messages": _dump(messages)}


def chat_message(message: Message) -> dict:
    return {"type": "chatMessage", "message": message.model_dump(mode="json")}


def room_destroyed(room_id: int) -> dict:
    return {"type": "roomDestroyed", "roomId": room_id}


def closed(code: CloseCode) -> dict:
    return {"type": "closed", "code": code.value}
