from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .errors import ShoeExhausted

RANKS = ("A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K")
SUITS = "shdc"
COURT_RANKS = frozenset({"J", "Q", "K"})
DECK_SIZE = len(RANKS) * len(SUITS)


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{self.rank}{self.suit}"

    @property
    def order(self) -> int:
        """Rank position with A=1 through K=13."""
        return RANKS.index(self.rank) + 1

    @property
    def points(self) -> int:
        return min(self.order, 10)

    @property
    def is_court(self) -> bool:
        return self.rank in COURT_RANKS


def build_deck() -> List[Card]:
    return [Card(rank, suit) for suit in SUITS for rank in RANKS]


@dataclass
class Shoe:
    # One full deck in draw order; cursor marks the next undealt card.
    cards: List[Card]
    cursor: int = 0

    @property
    def remaining(self) -> int:
        return len(self.cards) - self.cursor

    def draw(self, count: int) -> List[Card]:
        if self.remaining < count:
            raise ShoeExhausted(f"Need {count} cards, {self.remaining} left")
        drawn = self.cards[self.cursor : self.cursor + count]
        self.cursor += count
        return drawn


def new_shoe(rng: Optional[random.Random] = None) -> Shoe:
    deck = build_deck()
    # random.shuffle is Fisher-Yates: i from n-1 down to 1, swap with [0, i].
    (rng or random).shuffle(deck)
    return Shoe(cards=deck)


def cards_to_labels(cards: Sequence[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) not in (2, 3):
        raise ValueError(f"Invalid card label: {label}")
    return Card(label[:-1], label[-1])


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
