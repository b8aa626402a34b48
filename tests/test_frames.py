import json

import pytest

from errors import ChatError, ErrorCode, SuccessCode
from schemas import frames
from schemas.rooms import Message, RoomSnapshot


def parse(payload):
    return frames.parse_frame(json.dumps(payload))


def test_parses_join_room():
    frame = parse({"type": "joinRoom", "roomId": 7, "nickname": "Ada"})
    assert isinstance(frame, frames.JoinRoomFrame)
    assert frame.roomId == 7
    assert frame.nickname == "Ada"


def test_room_id_given_as_numeric_string_is_accepted():
    assert parse({"type": "archiveRoom", "roomId": "7"}).roomId == 7


def test_leave_room_without_room_id():
    assert parse({"type": "leaveRoom"}).roomId is None


def test_extra_fields_are_ignored():
    frame = parse({"type": "getAllRooms", "junk": True})
    assert isinstance(frame, frames.GetAllRoomsFrame)


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '"auth"'])
def test_malformed_frames_are_invalid_json(raw):
    with pytest.raises(ChatError) as exc:
        frames.parse_frame(raw)
    assert exc.value.code == ErrorCode.INVALID_JSON


@pytest.mark.parametrize("payload", [{"roomId": 1}, {"type": "dance"}, {"type": 5}])
def test_missing_or_unknown_type(payload):
    with pytest.raises(ChatError) as exc:
        parse(payload)
    assert exc.value.code == ErrorCode.UNKNOWN_TYPE


def test_invalid_fields_are_invalid_payload():
    with pytest.raises(ChatError) as exc:
        parse({"type": "sendMessage", "roomId": "seven", "content": "hi"})
    assert exc.value.code == ErrorCode.INVALID_PAYLOAD
    assert "roomId" in exc.value.reason


def test_auth_accepts_any_user_id_shape_for_the_gate_to_judge():
    assert parse({"type": "auth", "userId": 42}).userId == 42
    assert parse({"type": "auth"}).userId is None


def test_outbound_frames():
    snapshot = RoomSnapshot(id=7, name="General", participantCount=2, capacity=5, creator="u1", archived=False, createdAt="2024-01-01T00:00:00")
    message = Message(id=1, roomId=7, userId="u1", nickname="Ada", content="hi", sentAt="2024-01-01T00:00:01")

    assert frames.room_destroyed(7) == {"type": "roomDestroyed", "roomId": 7}
    assert frames.error(ErrorCode.ROOM_FULL) == {"type": "error", "code": "ROOM_FULL", "reason": "ROOM_FULL"}
    assert frames.success(SuccessCode.ROOM_CREATED, roomId=7) == {"type": "success", "code": "ROOM_CREATED", "roomId": 7}
    assert frames.room_data(snapshot)["room"]["participantCount"] == 2
    assert frames.chat_message(message)["message"]["nickname"] == "Ada"
    assert frames.all_active_rooms([snapshot])["rooms"][0]["capacity"] == 5
    assert frames.archived_room_data(snapshot, [message])["messages"][0]["content"] == "hi"
