from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Optional


def now_iso() -> str:
    return datetime.now().isoformat()


class Room(BaseModel):
    id: int
    name: str
    capacity: Optional[int] = None
    creator: str
    isPrivate: bool = False
    archived: bool = False
    createdAt: str = Field(default_factory=now_iso)

    def has_capacity_limit(self) -> bool:
        # unset or negative capacity means unlimited
        return self.capacity is not None and self.capacity >= 0

    def is_full(self, participant_count: int) -> bool:
        return self.has_capacity_limit() and participant_count >= self.capacity


class Message(BaseModel):
    id: int
    roomId: int
    userId: str
    nickname: Optional[str] = None
    color: Optional[str] = None
    content: str
    sentAt: str = Field(default_factory=now_iso)


class RoomSnapshot(BaseModel):
    id: int
    name: str
    participantCount: int
    capacity: Optional[int] = None
    creator: str
    isPrivate: bool = False
    archived: bool
    createdAt: str


class ConnectedClient(BaseModel):
    userId: str
    nickname: str
    color: Optional[str] = None


class CreateRoomRequest(BaseModel):
    name: Optional[str] = None
    # validated by the room service so HTTP and socket callers share error codes
    capacity: Optional[Any] = None
    creator: str
    isPrivate: bool = False


class RoomDetailsResponse(BaseModel):
    room: RoomSnapshot
    clients: list[ConnectedClient]


class ArchivedRoomResponse(BaseModel):
    room: RoomSnapshot
    messages: list[Message]
