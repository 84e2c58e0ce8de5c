from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence

from .cards import Card
from .models import HandType, Outcome

# Strength used at settlement. Classification order (below) is a different
# ordering: straight is tested before sam_luang but ranks beneath it.
HAND_STRENGTH: Dict[HandType, int] = {
    HandType.TONG: 8,
    HandType.STRAIGHT_FLUSH: 7,
    HandType.SAM_LUANG: 6,
    HandType.STRAIGHT: 5,
    HandType.SAM_DENG: 4,
    HandType.POKDENG: 3,
    HandType.SONG_DENG: 2,
    HandType.PAIR: 2,
    HandType.NORMAL: 1,
}

ACE_HIGH_RUN = [1, 12, 13]


@dataclass(frozen=True)
class SpecialHand:
    type: HandType
    multiplier: int
    label: str

    @property
    def strength(self) -> int:
        return HAND_STRENGTH[self.type]

    def as_payload(self) -> Dict[str, object]:
        return {"type": self.type.value, "multiplier": self.multiplier, "name": self.label}


NORMAL_HAND = SpecialHand(HandType.NORMAL, 1, "ปกติ")


def hand_value(cards: Sequence[Card]) -> int:
    """Pokdeng point total: sum of card points modulo 10."""
    return sum(card.points for card in cards) % 10


def classify(cards: Sequence[Card]) -> SpecialHand:
    """Map a hand to its special-hand tag; anything unmatched is normal."""
    if len(cards) == 3:
        flush = len({card.suit for card in cards}) == 1
        straight = is_straight(cards)
        if len({card.rank for card in cards}) == 1:
            return SpecialHand(HandType.TONG, 5, "ตอง")
        if flush and straight:
            return SpecialHand(HandType.STRAIGHT_FLUSH, 5, "เรียงฟลัช")
        if straight:
            return SpecialHand(HandType.STRAIGHT, 3, "เรียง")
        if all(card.is_court for card in cards):
            return SpecialHand(HandType.SAM_LUANG, 3, "สามเหลือง")
        if flush:
            return SpecialHand(HandType.SAM_DENG, 3, "สามเด้ง")
    elif len(cards) == 2:
        value = hand_value(cards)
        first, second = cards
        if value >= 8:
            return SpecialHand(HandType.POKDENG, 2 if value == 9 else 1, f"ป๊อก{value}")
        if first.suit == second.suit:
            return SpecialHand(HandType.SONG_DENG, 2, "สองเด้ง")
        if first.rank == second.rank:
            return SpecialHand(HandType.PAIR, 2, "คู่")
    return NORMAL_HAND


def is_straight(cards: Sequence[Card]) -> bool:
    if len(cards) != 3:
        return False
    orders = sorted(card.order for card in cards)
    if orders == ACE_HIGH_RUN:  # Q-K-A, ace played high
        return True
    return orders[1] - orders[0] == 1 and orders[2] - orders[1] == 1


def compare_hands(
    player_hand: SpecialHand,
    player_value: int,
    host_hand: SpecialHand,
    host_value: int,
) -> Outcome:
    """Outcome from the player's side: strength first, point value on a tie."""
    player_key = (player_hand.strength, player_value)
    host_key = (host_hand.strength, host_value)
    if player_key > host_key:
        return Outcome.WIN
    if player_key < host_key:
        return Outcome.LOSE
    return Outcome.DRAW
