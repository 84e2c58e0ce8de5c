#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import websockets
from websockets.asyncio.client import ClientConnection

logging.basicConfig(level=logging.INFO)

# ManualClient lets a person sit at a table from the terminal: server
# messages print as they arrive while typed commands are sent back.

HELP = """Commands:
  deal            take your first two cards (locks everyone's bets)
  hit             draw a third card
  bet <amount>    place or replace your bet
  lock            lock all bets
  shuffle         reshuffle the shoe (host only)
  host            become the host
  settle          settle bets against the host (host only)
  stats           request table stats
  say <text>      chat to the table
  quit            leave the table"""


@dataclass
class TableView:
    session_id: Optional[str] = None
    host_name: Optional[str] = None
    hand: List[str] = field(default_factory=list)
    hand_value: Optional[int] = None
    hand_label: Optional[str] = None


def parse_command(line: str) -> Optional[Dict[str, Any]]:
    """Translate a typed command into a protocol message, or None if unknown."""
    parts = line.strip().split(maxsplit=1)
    if not parts:
        return None
    verb = parts[0].lower()
    rest = parts[1] if len(parts) > 1 else ""
    simple = {
        "deal": "deal",
        "hit": "hit",
        "lock": "lock_bets",
        "shuffle": "shuffle",
        "host": "become_host",
        "settle": "settle",
        "stats": "get_stats",
        "quit": "leave",
    }
    if verb in simple:
        return {"type": simple[verb]}
    if verb == "bet":
        try:
            return {"type": "place_bet", "amount": int(rest)}
        except ValueError:
            return None
    if verb == "say" and rest:
        return {"type": "chat", "message": rest}
    return None


class ManualClient:
    def __init__(self, name: str, url: str, session_id: Optional[str] = None) -> None:
        self.name = name
        self.url = url
        self.session_id = session_id
        self.websocket: Optional[ClientConnection] = None
        self.view = TableView()

    async def run(self) -> None:
        async with websockets.connect(self.url) as ws:
            self.websocket = ws
            join: Dict[str, Any] = {"type": "join", "player_name": self.name}
            if self.session_id:
                join["session_id"] = self.session_id
            await self._send(join)
            print(HELP)
            reader = asyncio.create_task(self._read_loop())
            try:
                await self._input_loop()
            finally:
                reader.cancel()

    async def _read_loop(self) -> None:
        assert self.websocket is not None
        async for raw in self.websocket:
            self._print_message(json.loads(raw))

    async def _input_loop(self) -> None:
        while True:
            line = await asyncio.to_thread(input, "> ")
            if line.strip().lower() in ("help", "h", "?"):
                print(HELP)
                continue
            message = parse_command(line)
            if message is None:
                print("Unknown command. Type 'help' for options.")
                continue
            await self._send(message)
            if message["type"] == "leave":
                break

    def _print_message(self, msg: Dict[str, Any]) -> None:
        msg_type = msg.get("type")
        if msg_type == "session_joined":
            self.view.session_id = msg.get("session_id")
            self.view.host_name = (msg.get("host_info") or {}).get("host_name")
            players = ", ".join(
                f"{p['name']}{' (host)' if p['is_host'] else ''} chips={p['chips']}"
                for p in msg.get("all_players", [])
            )
            print(f"Joined table {self.view.session_id}: {players}")
        elif msg_type == "chat":
            print(f"[{msg.get('username')}] {msg.get('message')}")
        elif msg_type in ("cards", "card3"):
            self.view.hand = list(msg.get("cards") or msg.get("all_cards") or [])
            self.view.hand_value = msg.get("hand_value")
            self.view.hand_label = (msg.get("special_hand") or {}).get("name")
            print(f"Your hand: {' '.join(self.view.hand)} = {self.view.hand_value} ({self.view.hand_label})")
        elif msg_type == "shuffle":
            self.view.hand = []
            who = msg.get("shuffled_by") or "the shoe running out"
            print(f"Deck reshuffled by {who}; {msg.get('remaining_cards')} cards in shoe")
        elif msg_type == "host_changed":
            self.view.host_name = msg.get("host_name")
            print(f"Host is now {self.view.host_name}")
        elif msg_type == "bet_placed":
            print(f"{msg.get('player_name')} bets {msg.get('bet_amount')} (chips {msg.get('remaining_chips')})")
        elif msg_type == "bets_locked":
            print("Bets are locked")
        elif msg_type == "game_results":
            host_hand = msg.get("host_hand", {})
            print(f"Host: {' '.join(msg.get('host_cards', []))} = {msg.get('host_value')} ({host_hand.get('name')})")
            for result in msg.get("results", []):
                print(
                    f"  {result['player_name']}: {result['result']} {result['win_amount']:+d} -> {result['new_chips']}"
                )
            print(f"Host chips: {msg.get('host_chips')}")
        elif msg_type == "error":
            print(f"Error {msg.get('code')}: {msg.get('msg')}")
        else:
            summary = {k: v for k, v in msg.items() if k not in {"type", "v", "ts"}}
            print(f"{msg_type}: {json.dumps(summary, ensure_ascii=False)}")

    async def _send(self, payload: Dict[str, Any]) -> None:
        assert self.websocket is not None
        await self.websocket.send(json.dumps(payload))


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Pokdeng manual client")
    parser.add_argument("--url", default="ws://127.0.0.1:5000")
    parser.add_argument("--name", required=True)
    parser.add_argument("--session", default=None, help="Table id to join")
    return parser.parse_args(argv)


def main(argv: list[str]) -> None:
    args = parse_args(argv)
    client = ManualClient(name=args.name, url=args.url, session_id=args.session)
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        print("\nSession closed")


if __name__ == "__main__":
    main(sys.argv[1:])
