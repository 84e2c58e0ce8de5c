from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .cards import Card


class HandType(str, Enum):
    TONG = "tong"
    STRAIGHT_FLUSH = "straight_flush"
    STRAIGHT = "straight"
    SAM_LUANG = "sam_luang"
    SAM_DENG = "sam_deng"
    POKDENG = "pokdeng"
    SONG_DENG = "song_deng"
    PAIR = "pair"
    NORMAL = "normal"


class Outcome(str, Enum):
    WIN = "win"
    LOSE = "lose"
    DRAW = "draw"


@dataclass
class SessionConfig:
    idle_ttl_s: float = 60 * 60
    max_cards: int = 3
    max_name_length: int = 20


@dataclass
class Player:
    id: str
    name: str
    user_id: Optional[str] = None
    was_host: bool = False
    joined_at: float = 0.0
    cards: List[Card] = field(default_factory=list)
    hand_value: int = 0
    chips: int = 0
    current_bet: int = 0
    bet_locked: bool = False
    is_active: bool = True

    def reset_hand(self) -> None:
        self.cards = []
        self.hand_value = 0
        self.bet_locked = False

    def reset_bet(self) -> None:
        self.current_bet = 0
        self.bet_locked = False
