from __future__ import annotations

import logging
import random
import time
import uuid
from typing import Callable, Dict, List, Optional

from .models import SessionConfig
from .session import GameSession

LOGGER = logging.getLogger("pokdeng.registry")


class SessionRegistry:
    """Owns every live GameSession and the player -> session index.

    A player id belongs to at most one session. Sessions are created on the
    first join to an unknown id and dropped once their roster empties or the
    idle sweep finds them expired.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or SessionConfig()
        self.rng = rng or random.Random()
        self.clock = clock
        self.sessions: Dict[str, GameSession] = {}
        self.player_sessions: Dict[str, str] = {}

    def join_session(
        self,
        session_id: Optional[str],
        player_id: str,
        player_name: str,
        user_id: Optional[str] = None,
        was_host: bool = False,
    ) -> GameSession:
        self.leave_session(player_id)

        session = self.sessions.get(session_id) if session_id else None
        created = False
        if session is None:
            session = GameSession(
                session_id or self._new_session_id(),
                config=self.config,
                rng=self.rng,
                clock=self.clock,
            )
            created = True

        # Only register a new table once the first player is actually seated.
        session.add_player(player_id, player_name, user_id, was_host)
        if created:
            self.sessions[session.session_id] = session
        self.player_sessions[player_id] = session.session_id
        return session

    def leave_session(self, player_id: str) -> Optional[GameSession]:
        """Remove the player; returns their former session if it still exists."""
        session_id = self.player_sessions.pop(player_id, None)
        session = self.sessions.get(session_id) if session_id else None
        if session is None:
            return None
        session.remove_player(player_id)
        if not session.players:
            del self.sessions[session.session_id]
            return None
        return session

    def get_player_session(self, player_id: str) -> Optional[GameSession]:
        session_id = self.player_sessions.get(player_id)
        return self.sessions.get(session_id) if session_id else None

    def get_session(self, session_id: str) -> Optional[GameSession]:
        return self.sessions.get(session_id)

    def cleanup_expired_sessions(self) -> List[str]:
        removed: List[str] = []
        for session_id, session in list(self.sessions.items()):
            if not session.is_expired():
                continue
            for player_id in session.players:
                if self.player_sessions.get(player_id) == session_id:
                    del self.player_sessions[player_id]
            del self.sessions[session_id]
            removed.append(session_id)
            LOGGER.info("Cleaned up expired session %s", session_id)
        return removed

    def get_all_sessions(self) -> List[Dict[str, object]]:
        return [session.get_stats() for session in self.sessions.values()]

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    @property
    def player_count(self) -> int:
        return len(self.player_sessions)

    def _new_session_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex[:16]
            if session_id not in self.sessions:
                return session_id
