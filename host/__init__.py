"""Websocket host for Pokdeng tables: wraps the session registry with networking."""

from .config import ServerConfig
from .dispatcher import ActionDispatcher, Delivery, Outbound
from .server import PokdengServer

__all__ = ["ServerConfig", "ActionDispatcher", "Delivery", "Outbound", "PokdengServer"]
