from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from routers.rooms import rooms_router
from backend import RedisBackend
from constants import CORS_ORIGINS
from errors import StorageError
from relay.hub import ChatHub
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


def create_app(backend: Optional[RedisBackend] = None, start_sweeper: bool = True, **hub_options) -> FastAPI:
    """Build the relay application.

    ``backend`` defaults to a Redis store built from the environment;
    ``hub_options`` are forwarded to ``ChatHub`` (timeouts, TTL, limits).
    """
    store = backend if backend is not None else RedisBackend()
    hub = ChatHub(store, **hub_options)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            store.ping()
            logger.info("Room store reachable")
        except StorageError as e:
            logger.error(f"Room store unreachable at startup: {e}")
            raise
        hub.start(sweeper=start_sweeper)
        yield
        await hub.stop()
        logger.info("Chat relay stopped")

    app = FastAPI(title="Room relay", lifespan=lifespan)
    app.state.hub = hub

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)

    @app.get("/health")
    async def health():
        try:
            store.ping()
        except StorageError:
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {
            "status": "ok",
            "connections": len(hub.registry),
            "tracked_rooms": len(hub.clock),
        }

    @app.websocket("/ws/chat")
    async def websocket_endpoint(websocket: WebSocket):
        """Chat relay socket.

        The first frame must be ``{"type": "auth", "userId": ...}`` within the
        auth timeout; ``requestUserId`` may precede it to obtain an id.
        """
        logger.debug(f"WebSocket connection attempt from {websocket.client}")
        await hub.serve(websocket)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
