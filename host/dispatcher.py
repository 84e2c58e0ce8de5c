from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

from pokdeng.errors import GameError, InvalidBetAmount, SessionNotFound
from pokdeng.registry import SessionRegistry
from pokdeng.session import GameSession

from .security import (
    InvalidMessage,
    NotHost,
    sanitize_input,
    validate_message,
    validate_player_name,
)

LOGGER = logging.getLogger("pokdeng_host")

SYSTEM_USER = "System"
WELCOME_MESSAGE = "Welcome to Pokdeng!"

# The dispatcher turns one inbound action into core calls and a list of
# Outbound descriptors. Core calls run under the session (or registry) lock;
# nothing is sent until the handler has returned and the lock is released.


class Delivery(str, Enum):
    PLAYER = "player"
    SESSION = "session"
    OTHERS = "others"


@dataclass
class Outbound:
    delivery: Delivery
    msg_type: str
    payload: Dict[str, object] = field(default_factory=dict)
    session_id: Optional[str] = None


def _error(exc: GameError) -> Outbound:
    return Outbound(Delivery.PLAYER, "error", {"code": exc.code, "msg": exc.msg})


def _parse_amount(raw: object) -> int:
    if isinstance(raw, bool):
        raise InvalidBetAmount("Invalid bet amount")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            pass
    raise InvalidBetAmount("Invalid bet amount")


Handler = Callable[[str, Dict[str, object]], Awaitable[List[Outbound]]]


class ActionDispatcher:
    def __init__(self, registry: SessionRegistry, default_session_id: Optional[str] = None) -> None:
        self.registry = registry
        self.default_session_id = default_session_id
        # Registry mutations (join/leave/cleanup) and gameplay use separate locks.
        self.registry_lock = asyncio.Lock()
        self.session_locks: Dict[str, asyncio.Lock] = {}
        self._handlers: Dict[str, Handler] = {
            "join": self._join,
            "deal": self._deal,
            "hit": self._hit,
            "shuffle": self._shuffle,
            "place_bet": self._place_bet,
            "lock_bets": self._lock_bets,
            "become_host": self._become_host,
            "settle": self._settle,
            "chat": self._chat,
            "command": self._command,
            "get_stats": self._get_stats,
            "leave": self._leave,
        }

    async def handle(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        try:
            if handler is None:
                raise InvalidMessage("Unsupported message type", code="UNKNOWN_TYPE")
            return await handler(player_id, message)
        except GameError as exc:
            LOGGER.warning(
                "Rejected action player=%s type=%s code=%s reason=%s",
                player_id,
                msg_type,
                exc.code,
                exc.msg,
            )
            return [_error(exc)]

    async def leave(self, player_id: str) -> List[Outbound]:
        async with self.registry_lock:
            return await self._leave_locked(player_id)

    async def cleanup_expired(self) -> List[str]:
        async with self.registry_lock:
            removed = self.registry.cleanup_expired_sessions()
            for session_id in removed:
                self.session_locks.pop(session_id, None)
        return removed

    # Locking helpers -------------------------------------------------

    def _session_lock(self, session_id: str) -> asyncio.Lock:
        return self.session_locks.setdefault(session_id, asyncio.Lock())

    @asynccontextmanager
    async def _locked_session(self, player_id: str) -> AsyncIterator[GameSession]:
        session = self.registry.get_player_session(player_id)
        if session is None:
            raise SessionNotFound("You must join a game session first")
        async with self._session_lock(session.session_id):
            # The player may have left or the table expired while we waited.
            if self.registry.get_player_session(player_id) is not session:
                raise SessionNotFound("You must join a game session first")
            yield session

    async def _leave_locked(self, player_id: str) -> List[Outbound]:
        session = self.registry.get_player_session(player_id)
        if session is None:
            self.registry.leave_session(player_id)
            return []
        session_id = session.session_id
        async with self._session_lock(session_id):
            previous_host = session.host_id
            remaining = self.registry.leave_session(player_id)
        if remaining is None:
            self.session_locks.pop(session_id, None)
            LOGGER.info("Session %s closed (last player left)", session_id)
            return []

        outbound = [
            Outbound(
                Delivery.SESSION,
                "player_left",
                {"player_id": player_id, "stats": remaining.get_stats()},
                session_id,
            )
        ]
        if remaining.host_id != previous_host:
            outbound.append(Outbound(Delivery.SESSION, "host_changed", remaining.host_info(), session_id))
        return outbound

    # Handlers --------------------------------------------------------

    async def _join(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        name = sanitize_input(message.get("player_name")) or f"Player_{player_id[:6]}"
        validate_player_name(name)
        hint = message.get("session_id")
        session_hint = hint if isinstance(hint, str) and hint else self.default_session_id
        user_id = message.get("user_id")
        user_id = user_id if isinstance(user_id, str) and user_id else None
        was_host = bool(message.get("was_host"))

        async with self.registry_lock:
            outbound = await self._leave_locked(player_id)
            existing = self.registry.get_session(session_hint) if session_hint else None
            if existing is not None:
                async with self._session_lock(existing.session_id):
                    session = self.registry.join_session(session_hint, player_id, name, user_id, was_host)
            else:
                session = self.registry.join_session(session_hint, player_id, name, user_id, was_host)
            player = session.players[player_id]
            session_id = session.session_id
            stats = session.get_stats()
            joined = {
                "session_id": session_id,
                "player_name": player.name,
                "stats": stats,
                "host_info": session.host_info(),
                "all_players": session.player_summaries(),
            }
            announce = {
                "player_id": player_id,
                "player_name": player.name,
                "chips": player.chips,
                "current_bet": player.current_bet,
                "stats": stats,
            }
            host_info = session.host_info()

        LOGGER.info("%s joined session %s (%s players)", player.name, session_id, stats["player_count"])
        outbound.extend(
            [
                Outbound(Delivery.PLAYER, "session_joined", joined, session_id),
                Outbound(Delivery.OTHERS, "player_joined", announce, session_id),
                Outbound(Delivery.SESSION, "host_changed", host_info, session_id),
                Outbound(Delivery.PLAYER, "chat", {"username": SYSTEM_USER, "message": WELCOME_MESSAGE}, session_id),
            ]
        )
        return outbound

    async def _leave(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        return await self.leave(player_id)

    async def _deal(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        async with self._locked_session(player_id) as session:
            result = session.deal_initial_cards(player_id)
            # Bets freeze as soon as cards hit the table.
            session.lock_all_bets()
            name = session.players[player_id].name
            session_id = session.session_id

        outbound: List[Outbound] = []
        if result.reshuffled:
            outbound.append(self._implicit_shuffle(session_id, result.remaining_cards))
        outbound.extend(
            [
                Outbound(Delivery.SESSION, "chat", {"username": name, "message": f"{name} received starting cards"}, session_id),
                Outbound(Delivery.PLAYER, "cards", {"username": name, **result.as_payload()}, session_id),
                Outbound(Delivery.SESSION, "bets_locked", {}, session_id),
            ]
        )
        return outbound

    async def _hit(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        async with self._locked_session(player_id) as session:
            result = session.hit_card(player_id)
            name = session.players[player_id].name
            session_id = session.session_id

        outbound: List[Outbound] = []
        if result.reshuffled:
            outbound.append(self._implicit_shuffle(session_id, result.remaining_cards))
        outbound.extend(
            [
                Outbound(Delivery.SESSION, "chat", {"username": name, "message": f"{name} drew another card"}, session_id),
                Outbound(Delivery.PLAYER, "card3", {"username": name, **result.as_payload()}, session_id),
            ]
        )
        return outbound

    async def _shuffle(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        async with self._locked_session(player_id) as session:
            if not session.is_host(player_id):
                raise NotHost("Only the host can shuffle the deck")
            session.reshuffle_deck()
            name = session.players[player_id].name
            session_id = session.session_id
            remaining = session.shoe.remaining

        LOGGER.info("%s shuffled deck in session %s", name, session_id)
        return [
            Outbound(
                Delivery.SESSION,
                "chat",
                {"username": SYSTEM_USER, "message": f"{name} (Host) reshuffled the deck. All hands are cleared."},
                session_id,
            ),
            Outbound(Delivery.SESSION, "shuffle", {"remaining_cards": remaining, "shuffled_by": name}, session_id),
        ]

    def _implicit_shuffle(self, session_id: str, remaining: int) -> Outbound:
        LOGGER.info("Shoe exhausted in session %s; reshuffled", session_id)
        return Outbound(Delivery.SESSION, "shuffle", {"remaining_cards": remaining, "shuffled_by": None}, session_id)

    async def _place_bet(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        amount = _parse_amount(message.get("amount"))
        async with self._locked_session(player_id) as session:
            result = session.place_bet(player_id, amount)
            session_id = session.session_id

        LOGGER.info("%s bet %s chips in session %s", result.player_name, amount, session_id)
        return [Outbound(Delivery.SESSION, "bet_placed", result.as_payload(), session_id)]

    async def _lock_bets(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        async with self._locked_session(player_id) as session:
            session.lock_all_bets()
            session_id = session.session_id
        return [Outbound(Delivery.SESSION, "bets_locked", {}, session_id)]

    async def _become_host(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        async with self._locked_session(player_id) as session:
            host_info = session.change_host(player_id)
            session_id = session.session_id

        LOGGER.info("%s became host of session %s", host_info["host_name"], session_id)
        return [Outbound(Delivery.SESSION, "host_changed", host_info, session_id)]

    async def _settle(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        async with self._locked_session(player_id) as session:
            if not session.is_host(player_id):
                raise NotHost("Only the host can calculate winnings")
            settlement = session.calculate_winnings(player_id)
            session_id = session.session_id

        LOGGER.info(
            "Settled session %s: %s players, host chips=%s",
            session_id,
            len(settlement.results),
            settlement.host_chips,
        )
        return [Outbound(Delivery.SESSION, "game_results", settlement.as_payload(), session_id)]

    async def _chat(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        text = sanitize_input(validate_message(message))
        session = self.registry.get_player_session(player_id)
        if session is None:
            raise SessionNotFound("You must join a game session first")
        player = session.players.get(player_id)
        username = player.name if player else SYSTEM_USER
        return [Outbound(Delivery.SESSION, "chat", {"username": username, "message": text}, session.session_id)]

    async def _command(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        command = validate_message(message).strip().lower()
        if command == "pok":
            return await self._deal(player_id, message)
        if command == "hit":
            return await self._hit(player_id, message)
        if command == "shuffle":
            return await self._shuffle(player_id, message)
        return await self._chat(player_id, message)

    async def _get_stats(self, player_id: str, message: Dict[str, object]) -> List[Outbound]:
        async with self._locked_session(player_id) as session:
            stats = session.get_stats()
        return [Outbound(Delivery.PLAYER, "session_stats", stats, session.session_id)]
