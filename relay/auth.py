import time
from enum import Enum
from typing import Any, Callable, Optional

from constants import AUTH_TIMEOUT_SECONDS
from errors import ChatError, ErrorCode


class AuthState(str, Enum):
    CONNECTING = "connecting"
    AWAITING_AUTH = "awaiting_auth"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"
    REJECTED = "rejected"


class AuthGate:
    """Per-socket handshake state.

    connecting -> awaiting_auth -> authenticated -> closed, with rejected as
    the terminal state for a socket that never authenticated in time. Only
    an authenticated socket may reach room or message handlers.
    """

    def __init__(self, timeout: float = AUTH_TIMEOUT_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self.state = AuthState.CONNECTING
        self.identity: Optional[str] = None
        self._clock = clock
        self._deadline: Optional[float] = None

    def open(self):
        if self.state != AuthState.CONNECTING:
            raise RuntimeError(f"Cannot open auth gate in state {self.state.value}")
        self.state = AuthState.AWAITING_AUTH
        self._deadline = self._clock() + self.timeout

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    @property
    def is_finished(self) -> bool:
        return self.state in (AuthState.CLOSED, AuthState.REJECTED)

    def remaining(self) -> Optional[float]:
        """Seconds left to authenticate, or None once the deadline no longer applies."""
        if self.state != AuthState.AWAITING_AUTH:
            return None
        return max(0.0, self._deadline - self._clock())

    def validate_identity(self, user_id: Any) -> str:
        if self.state == AuthState.AUTHENTICATED:
            raise ChatError(ErrorCode.ALREADY_AUTHENTICATED, "This socket is already authenticated")
        if self.state != AuthState.AWAITING_AUTH:
            raise ChatError(ErrorCode.UNAUTHORIZED, "Socket is not accepting authentication")
        if not isinstance(user_id, str) or not user_id.strip():
            raise ChatError(ErrorCode.UNAUTHORIZED, "First message must be 'auth' with a valid userId")
        return user_id.strip()

    def authenticate(self, identity: str):
        # clears the deadline: remaining() is None from here on
        self.state = AuthState.AUTHENTICATED
        self.identity = identity
        self._deadline = None

    def reject(self):
        self.state = AuthState.REJECTED
        self._deadline = None

    def close(self):
        if self.state != AuthState.REJECTED:
            self.state = AuthState.CLOSED
        self._deadline = None
