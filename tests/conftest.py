"""Shared test fixtures: an isolated fakeredis store, the app, and fake sockets."""
import json

import fakeredis
import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from app import create_app
from backend import RedisBackend
from relay.auth import AuthGate
from relay.connection import Connection
from relay.hub import ChatHub


class FakeWebSocket:
    """Records what the relay writes; stands in for a Starlette WebSocket."""

    def __init__(self, fail_sends: bool = False):
        self.sent = []
        self.fail_sends = fail_sends
        self.close_code = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, data: str):
        if self.fail_sends:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason=None):
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def types(self):
        return [frame["type"] for frame in self.sent]

    def of_type(self, frame_type: str):
        return [frame for frame in self.sent if frame["type"] == frame_type]


@pytest.fixture
def redis_client():
    # a private server per test so ids and keys never leak between tests
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def store(redis_client):
    return RedisBackend(redis_client)


@pytest.fixture
def chat_hub(store):
    return ChatHub(store, auth_timeout=5, room_ttl=60, sweep_interval=10)


@pytest.fixture
def connect(chat_hub):
    """Async factory: an authenticated Connection on a FakeWebSocket.

    Must be awaited inside a running event loop because the connection
    starts its writer task immediately.
    """
    async def _connect(identity: str, fail_sends: bool = False) -> Connection:
        connection = Connection(FakeWebSocket(fail_sends=fail_sends), auth=AuthGate(5))
        connection.start()
        connection.auth.open()
        await chat_hub.authenticate(connection, identity)
        await connection.flush()
        connection.websocket.sent.clear()
        return connection

    return _connect


@pytest.fixture
def relay_app(store):
    return create_app(store, start_sweeper=False, auth_timeout=2, room_ttl=60)


@pytest.fixture
def hub(relay_app):
    return relay_app.state.hub


@pytest.fixture
def client(relay_app):
    with TestClient(relay_app) as test_client:
        yield test_client
