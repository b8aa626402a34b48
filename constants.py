import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

# Seconds a fresh socket has to send its auth frame
AUTH_TIMEOUT_SECONDS = float(os.getenv("AUTH_TIMEOUT_SECONDS", 5))

# Inactivity window before a room is archived, and how often the sweep runs
ROOM_TTL_SECONDS = float(os.getenv("ROOM_TTL_SECONDS", 600))
SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", 10))

MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", 200))
MAX_NICKNAME_LENGTH = int(os.getenv("MAX_NICKNAME_LENGTH", 32))
MAX_COLOR_LENGTH = int(os.getenv("MAX_COLOR_LENGTH", 32))
MAX_ROOM_NAME_LENGTH = int(os.getenv("MAX_ROOM_NAME_LENGTH", 64))
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", 100))

OUTBOUND_QUEUE_SIZE = int(os.getenv("OUTBOUND_QUEUE_SIZE", 256))
SINGLE_ROOM_PER_CONNECTION = os.getenv("SINGLE_ROOM_PER_CONNECTION", "true").lower() in ("1", "true", "yes")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
