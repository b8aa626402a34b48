"""Stable error, success and close codes shared by the relay and its clients.

Clients branch on these strings, so a code never changes meaning once
released. New conditions get new codes.
"""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    # protocol
    UNAUTHORIZED = "UNAUTHORIZED"
    AUTH_TIMEOUT = "AUTH_TIMEOUT"
    ALREADY_AUTHENTICATED = "ALREADY_AUTHENTICATED"
    INVALID_JSON = "INVALID_JSON"
    UNKNOWN_TYPE = "UNKNOWN_TYPE"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    # domain
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    ROOM_ARCHIVED = "ROOM_ARCHIVED"
    ROOM_NOT_ARCHIVED = "ROOM_NOT_ARCHIVED"
    ROOM_FULL = "ROOM_FULL"
    NICKNAME_REQUIRED = "NICKNAME_REQUIRED"
    INVALID_MESSAGE_FORMAT = "INVALID_MESSAGE_FORMAT"
    NOT_IN_ROOM = "NOT_IN_ROOM"
    ROOM_NAME_REQUIRED = "ROOM_NAME_REQUIRED"
    INVALID_MAX_PARTICIPANTS = "INVALID_MAX_PARTICIPANTS"
    NOT_ROOM_OWNER = "NOT_ROOM_OWNER"
    # system
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SuccessCode(str, Enum):
    ROOM_CREATED = "ROOM_CREATED"
    ROOM_JOINED = "ROOM_JOINED"
    ROOM_LEFT = "ROOM_LEFT"
    ROOM_CLOSED = "ROOM_CLOSED"


class CloseCode(str, Enum):
    DUPLICATE_CONNECTION = "DUPLICATE_CONNECTION"


# WebSocket close status used when the relay drops a socket on purpose
WS_POLICY_VIOLATION = 1008


class ChatError(Exception):
    """A protocol or domain failure reported to the requesting socket only."""

    def __init__(self, code: ErrorCode, reason: Optional[str] = None):
        self.code = code
        self.reason = reason or code.value
        super().__init__(f"{code.value}: {self.reason}")


class StorageError(Exception):
    """The room store could not complete an operation."""
