from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from .cards import Card, Shoe, cards_to_labels, new_shoe
from .errors import (
    BetLocked,
    HostHasNoCards,
    InvalidBetAmount,
    InvalidPlayerName,
    MaxCardsReached,
    PlayerNotFound,
)
from .hands import SpecialHand, classify, compare_hands, hand_value
from .models import Outcome, Player, SessionConfig

# GameSession is one table's state machine. It never touches sockets, locks
# or timers; callers serialize access and fan results out themselves.


@dataclass
class DealResult:
    cards: List[Card]
    hand_value: int
    special_hand: SpecialHand
    remaining_cards: int
    reshuffled: bool = False

    def as_payload(self) -> Dict[str, object]:
        return {
            "cards": cards_to_labels(self.cards),
            "hand_value": self.hand_value,
            "special_hand": self.special_hand.as_payload(),
            "remaining_cards": self.remaining_cards,
        }


@dataclass
class HitResult:
    card: Card
    all_cards: List[Card]
    hand_value: int
    special_hand: SpecialHand
    remaining_cards: int
    reshuffled: bool = False

    def as_payload(self) -> Dict[str, object]:
        return {
            "card": self.card.label,
            "all_cards": cards_to_labels(self.all_cards),
            "hand_value": self.hand_value,
            "special_hand": self.special_hand.as_payload(),
            "remaining_cards": self.remaining_cards,
        }


@dataclass
class BetResult:
    player_id: str
    player_name: str
    bet_amount: int
    remaining_chips: int

    def as_payload(self) -> Dict[str, object]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "bet_amount": self.bet_amount,
            "remaining_chips": self.remaining_chips,
        }


@dataclass
class PlayerResult:
    player_id: str
    player_name: str
    hand: SpecialHand
    value: int
    bet_amount: int
    outcome: Outcome
    win_amount: int
    new_chips: int

    def as_payload(self) -> Dict[str, object]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "player_hand": self.hand.as_payload(),
            "player_value": self.value,
            "bet_amount": self.bet_amount,
            "result": self.outcome.value,
            "win_amount": self.win_amount,
            "new_chips": self.new_chips,
        }


@dataclass
class SettlementResult:
    host_id: str
    host_cards: List[Card]
    host_hand: SpecialHand
    host_value: int
    host_chips: int
    results: List[PlayerResult] = field(default_factory=list)

    def as_payload(self) -> Dict[str, object]:
        return {
            "host_id": self.host_id,
            "host_cards": cards_to_labels(self.host_cards),
            "host_hand": self.host_hand.as_payload(),
            "host_value": self.host_value,
            "host_chips": self.host_chips,
            "results": [result.as_payload() for result in self.results],
        }


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


class GameSession:
    """Live state for one Pokdeng table: roster, shoe, host and bets."""

    def __init__(
        self,
        session_id: str,
        config: Optional[SessionConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session_id = session_id
        self.config = config or SessionConfig()
        self.rng = rng or random.Random()
        self.clock = clock
        self.shoe: Shoe = new_shoe(self.rng)
        self.players: Dict[str, Player] = {}
        self.host_id: Optional[str] = None
        self.created_at = clock()
        self.last_activity = self.created_at

    # Roster ----------------------------------------------------------

    def add_player(
        self,
        player_id: str,
        name: str,
        user_id: Optional[str] = None,
        was_host: bool = False,
    ) -> Player:
        display = name.strip() if isinstance(name, str) else ""
        if not display:
            raise InvalidPlayerName("Player name is required")
        if len(display) > self.config.max_name_length:
            raise InvalidPlayerName(f"Player name longer than {self.config.max_name_length} characters")

        player = Player(
            id=player_id,
            name=display,
            user_id=user_id,
            was_host=was_host,
            joined_at=self.clock(),
        )
        self.players[player_id] = player

        # A reconnecting host reclaims the seat over whoever holds it now.
        if self.host_id is None or was_host:
            self.host_id = player_id

        self.touch()
        return player

    def remove_player(self, player_id: str) -> bool:
        """Drop a player; returns True when the host role moved as a result."""
        if self.players.pop(player_id, None) is None:
            return False
        host_moved = False
        if self.host_id == player_id:
            self.host_id = next(iter(self.players), None)
            host_moved = True
        self.touch()
        return host_moved

    def change_host(self, new_host_id: str) -> Dict[str, object]:
        self._require_player(new_host_id)
        self.host_id = new_host_id
        self.touch()
        return self.host_info()

    def is_host(self, player_id: str) -> bool:
        return self.host_id is not None and self.host_id == player_id

    def host_info(self) -> Dict[str, object]:
        host = self.players.get(self.host_id) if self.host_id else None
        return {"host_id": self.host_id, "host_name": host.name if host else None}

    def _require_player(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None:
            raise PlayerNotFound("Player not found in session")
        return player

    # Cards -----------------------------------------------------------

    def deal_initial_cards(self, player_id: str) -> DealResult:
        player = self._require_player(player_id)

        # Replayed deal requests get the hand already on the table.
        if player.cards:
            return DealResult(
                cards=list(player.cards),
                hand_value=player.hand_value,
                special_hand=classify(player.cards),
                remaining_cards=self.shoe.remaining,
            )

        cards, reshuffled = self._draw(2)
        player.cards = cards
        player.hand_value = hand_value(cards)
        self.touch()
        return DealResult(
            cards=list(cards),
            hand_value=player.hand_value,
            special_hand=classify(cards),
            remaining_cards=self.shoe.remaining,
            reshuffled=reshuffled,
        )

    def hit_card(self, player_id: str) -> HitResult:
        player = self._require_player(player_id)
        if len(player.cards) >= self.config.max_cards:
            raise MaxCardsReached("Player already has maximum cards")

        (card,), reshuffled = self._draw(1)
        player.cards.append(card)
        player.hand_value = hand_value(player.cards)
        self.touch()
        return HitResult(
            card=card,
            all_cards=list(player.cards),
            hand_value=player.hand_value,
            special_hand=classify(player.cards),
            remaining_cards=self.shoe.remaining,
            reshuffled=reshuffled,
        )

    def reshuffle_deck(self) -> None:
        """Fresh shoe; every hand and bet lock is cleared, bet amounts are kept."""
        self.shoe = new_shoe(self.rng)
        for player in self.players.values():
            player.reset_hand()
        self.touch()

    def _draw(self, count: int) -> Tuple[List[Card], bool]:
        reshuffled = False
        if self.shoe.remaining < count:
            self.reshuffle_deck()
            reshuffled = True
        return self.shoe.draw(count), reshuffled

    # Betting ---------------------------------------------------------

    def place_bet(self, player_id: str, amount: int) -> BetResult:
        player = self._require_player(player_id)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidBetAmount("Invalid bet amount")
        if player.bet_locked:
            raise BetLocked("Bet already locked")

        # No solvency check: chip balances are allowed to go negative.
        player.current_bet = amount
        self.touch()
        return BetResult(
            player_id=player_id,
            player_name=player.name,
            bet_amount=amount,
            remaining_chips=player.chips,
        )

    def lock_all_bets(self) -> None:
        for player in self.players.values():
            if player.current_bet > 0:
                player.bet_locked = True
        self.touch()

    def calculate_winnings(self, host_id: str) -> SettlementResult:
        host = self._require_player(host_id)
        if not host.cards:
            raise HostHasNoCards("Host has no cards")

        host_hand = classify(host.cards)
        host_value = host.hand_value

        # Every comparison is made before any balance moves.
        pending: List[Tuple[Player, SpecialHand, Outcome, int]] = []
        for player in self.players.values():
            if player.id == host_id or player.current_bet == 0 or not player.cards:
                continue
            hand = classify(player.cards)
            outcome = compare_hands(hand, player.hand_value, host_hand, host_value)
            if outcome == Outcome.WIN:
                delta = player.current_bet * hand.multiplier
            elif outcome == Outcome.LOSE:
                delta = -player.current_bet
            else:
                delta = 0
            pending.append((player, hand, outcome, delta))

        results: List[PlayerResult] = []
        for player, hand, outcome, delta in pending:
            player.chips += delta
            host.chips -= delta
            results.append(
                PlayerResult(
                    player_id=player.id,
                    player_name=player.name,
                    hand=hand,
                    value=player.hand_value,
                    bet_amount=player.current_bet,
                    outcome=outcome,
                    win_amount=delta,
                    new_chips=player.chips,
                )
            )
            player.reset_bet()
        host.reset_bet()
        self.touch()

        return SettlementResult(
            host_id=host_id,
            host_cards=list(host.cards),
            host_hand=host_hand,
            host_value=host_value,
            host_chips=host.chips,
            results=results,
        )

    # Snapshots -------------------------------------------------------

    def player_summaries(self) -> List[Dict[str, object]]:
        return [
            {
                "id": player.id,
                "name": player.name,
                "is_host": self.is_host(player.id),
                "chips": player.chips,
                "current_bet": player.current_bet,
            }
            for player in self.players.values()
        ]

    def get_stats(self) -> Dict[str, object]:
        return {
            "session_id": self.session_id,
            "player_count": len(self.players),
            "remaining_cards": self.shoe.remaining,
            "created_at": _iso(self.created_at),
            "last_activity": _iso(self.last_activity),
            "host_info": self.host_info(),
            "players": [
                {
                    "id": player.id,
                    "name": player.name,
                    "card_count": len(player.cards),
                    "hand_value": player.hand_value,
                    "is_active": player.is_active,
                }
                for player in self.players.values()
            ],
        }

    def touch(self) -> None:
        self.last_activity = self.clock()

    def is_expired(self) -> bool:
        return self.clock() - self.last_activity > self.config.idle_ttl_s
