from __future__ import annotations

import html
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from pokdeng.errors import GameError, InvalidPlayerName

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 20
MAX_MESSAGE_LENGTH = 500


class NotHost(GameError):
    code = "NOT_HOST"


class InvalidMessage(GameError):
    code = "INVALID_MESSAGE"


class RateLimited(GameError):
    code = "RATE_LIMIT"


def sanitize_input(text: object) -> str:
    if not isinstance(text, str):
        return ""
    return html.escape(text.strip(), quote=True)


def validate_player_name(name: str) -> str:
    if not name:
        raise InvalidPlayerName("Player name is required")
    if not MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH:
        raise InvalidPlayerName(f"Player name must be between {MIN_NAME_LENGTH}-{MAX_NAME_LENGTH} characters")
    return name


def validate_message(message: Dict[str, object]) -> str:
    text = message.get("message")
    if not isinstance(text, str) or not text:
        raise InvalidMessage("Message is required and must be a string")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise InvalidMessage("Message too long")
    return text


@dataclass
class _ClientWindow:
    requests: List[float] = field(default_factory=list)
    blocked: bool = False


class SocketRateLimit:
    """Sliding-window event limiter keyed by connection id.

    A client that hits the ceiling stays blocked until its whole window has
    drained, not just until one slot frees up.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_s = window_s
        self.clock = clock
        self.clients: Dict[str, _ClientWindow] = {}

    def check_limit(self, client_id: str) -> bool:
        now = self.clock()
        window = self.clients.setdefault(client_id, _ClientWindow())
        window.requests = [ts for ts in window.requests if now - ts < self.window_s]

        if window.blocked and not window.requests:
            window.blocked = False
        if window.blocked:
            return False
        if len(window.requests) >= self.max_requests:
            window.blocked = True
            return False

        window.requests.append(now)
        return True

    def forget(self, client_id: str) -> None:
        self.clients.pop(client_id, None)

    def cleanup(self, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        for client_id, window in list(self.clients.items()):
            window.requests = [ts for ts in window.requests if now - ts < self.window_s]
            if not window.requests:
                del self.clients[client_id]
