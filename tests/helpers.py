from __future__ import annotations

import random
from typing import Iterable, Sequence

from pokdeng.cards import parse_cards
from pokdeng.hands import hand_value
from pokdeng.registry import SessionRegistry
from pokdeng.session import GameSession


class FakeClock:
    """Manually advanced clock so idle expiry can be tested without sleeping."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_session(
    players: Iterable[str] = ("host", "alice", "bob"),
    *,
    seed: int = 42,
    clock: FakeClock | None = None,
) -> GameSession:
    """Instantiate a session with a seeded shoe and a populated roster (first id hosts)."""
    session = GameSession("T-1", rng=random.Random(seed), clock=clock or FakeClock())
    for player_id in players:
        session.add_player(player_id, player_id.capitalize())
    return session


def create_registry(seed: int = 7, clock: FakeClock | None = None) -> SessionRegistry:
    return SessionRegistry(rng=random.Random(seed), clock=clock or FakeClock())


def give_hand(session: GameSession, player_id: str, labels: Sequence[str]) -> None:
    """Force a specific hand onto a player, bypassing the shoe."""
    player = session.players[player_id]
    player.cards = parse_cards(labels)
    player.hand_value = hand_value(player.cards)


def total_chips(session: GameSession) -> int:
    return sum(player.chips for player in session.players.values())
