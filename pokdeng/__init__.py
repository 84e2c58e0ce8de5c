"""Pokdeng table engine: deck, hand rules, per-table sessions and the registry."""

from .cards import Card, RANKS, SUITS, Shoe, build_deck, new_shoe, parse_cards
from .errors import GameError
from .hands import SpecialHand, classify, compare_hands, hand_value
from .models import HandType, Outcome, Player, SessionConfig
from .registry import SessionRegistry
from .session import GameSession, SettlementResult

__all__ = [
    "Card",
    "RANKS",
    "SUITS",
    "Shoe",
    "build_deck",
    "new_shoe",
    "parse_cards",
    "GameError",
    "SpecialHand",
    "classify",
    "compare_hands",
    "hand_value",
    "HandType",
    "Outcome",
    "Player",
    "SessionConfig",
    "SessionRegistry",
    "GameSession",
    "SettlementResult",
]
