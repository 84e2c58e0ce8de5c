"""Typed failures raised by the Pokdeng core.

Every error is local to the single action that triggered it. ``code`` is a
stable identifier the host forwards to clients; ``msg`` is human readable.
"""

from __future__ import annotations


class GameError(Exception):
    code = "GAME_ERROR"

    def __init__(self, msg: str = "", code: str | None = None) -> None:
        super().__init__(msg or self.__class__.__name__)
        if code is not None:
            self.code = code
        self.msg = msg or self.__class__.__name__


class PlayerNotFound(GameError):
    code = "PLAYER_NOT_FOUND"


class ShoeExhausted(GameError):
    code = "SHOE_EXHAUSTED"


class InvalidBetAmount(GameError):
    code = "INVALID_BET_AMOUNT"


class BetLocked(GameError):
    code = "BET_LOCKED"


class MaxCardsReached(GameError):
    code = "MAX_CARDS_REACHED"


class HostHasNoCards(GameError):
    code = "HOST_HAS_NO_CARDS"


class SessionNotFound(GameError):
    code = "SESSION_NOT_FOUND"


class InvalidPlayerName(GameError):
    code = "INVALID_PLAYER_NAME"
