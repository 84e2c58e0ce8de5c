from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import websockets
from websockets.asyncio.server import ServerConnection

from pokdeng.registry import SessionRegistry

from .config import ServerConfig
from .dispatcher import ActionDispatcher, Delivery, Outbound
from .security import SocketRateLimit

LOGGER = logging.getLogger("pokdeng_host")

# PokdengServer glues the session registry to websocket clients. Every
# network concern lives here; GameSession and SessionRegistry stay pure.


@dataclass
class ClientConnection:
    player_id: str
    ip: str
    websocket: ServerConnection


class PokdengServer:
    def __init__(self, config: ServerConfig, registry: Optional[SessionRegistry] = None) -> None:
        self.config = config
        self.registry = registry or SessionRegistry(config.session_config())
        self.dispatcher = ActionDispatcher(self.registry, default_session_id=config.default_session_id)
        self.rate_limit = SocketRateLimit(config.rate_limit_max, config.rate_limit_window_s)
        self.connections: Dict[str, ClientConnection] = {}
        self.connections_by_ip: Dict[str, int] = {}
        self._tasks: List[asyncio.Task] = []

    async def start(self) -> None:
        async with websockets.serve(self._handle_connection, self.config.host, self.config.port):
            LOGGER.info("Pokdeng server listening on %s:%s", self.config.host, self.config.port)
            self._tasks = [
                asyncio.create_task(self._cleanup_loop()),
                asyncio.create_task(self._stats_loop()),
            ]
            try:
                await asyncio.Future()
            finally:
                for task in self._tasks:
                    task.cancel()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        ip = self._client_ip(websocket)
        if self.connections_by_ip.get(ip, 0) >= self.config.max_connections_per_ip:
            LOGGER.warning("Too many connections from %s", ip)
            await self._send_error(websocket, code="TOO_MANY_CONNECTIONS", msg="Too many connections from this address")
            await websocket.close()
            return
        if len(self.connections) >= self.config.max_connections:
            LOGGER.warning("Connection limit reached (%s active)", len(self.connections))
            await self._send_error(websocket, code="SERVER_FULL", msg="Server is full, try again later")
            await websocket.close()
            return

        player_id = uuid.uuid4().hex
        self._register(ClientConnection(player_id=player_id, ip=ip, websocket=websocket))
        LOGGER.info("Player %s connected (%s active)", player_id, len(self.connections))

        try:
            async for raw in websocket:
                await self._handle_message(player_id, raw)
        except websockets.ConnectionClosed:
            pass
        finally:
            self._unregister(player_id)
            outbound = await self.dispatcher.leave(player_id)
            await self._deliver(player_id, outbound)
            LOGGER.info("Player %s disconnected (%s active)", player_id, len(self.connections))

    async def _handle_message(self, player_id: str, raw: str) -> None:
        if not self.rate_limit.check_limit(player_id):
            await self._send_to_player(player_id, "error", {"code": "RATE_LIMIT", "msg": "Too many actions, slow down"})
            return
        message = self._decode(raw)
        if not message:
            await self._send_to_player(player_id, "error", {"code": "BAD_SCHEMA", "msg": "Expected a JSON object"})
            return
        outbound = await self.dispatcher.handle(player_id, message)
        await self._deliver(player_id, outbound)

    def _register(self, connection: ClientConnection) -> None:
        self.connections[connection.player_id] = connection
        self.connections_by_ip[connection.ip] = self.connections_by_ip.get(connection.ip, 0) + 1

    def _unregister(self, player_id: str) -> None:
        connection = self.connections.pop(player_id, None)
        self.rate_limit.forget(player_id)
        if connection is None:
            return
        remaining = self.connections_by_ip.get(connection.ip, 0) - 1
        if remaining > 0:
            self.connections_by_ip[connection.ip] = remaining
        else:
            self.connections_by_ip.pop(connection.ip, None)

    # Fan-out ---------------------------------------------------------

    def _targets(self, player_id: str, item: Outbound) -> List[ServerConnection]:
        if item.delivery == Delivery.PLAYER:
            connection = self.connections.get(player_id)
            return [connection.websocket] if connection else []
        session = self.registry.get_session(item.session_id) if item.session_id else None
        if session is None:
            return []
        members = [pid for pid in session.players if pid in self.connections]
        if item.delivery == Delivery.OTHERS:
            members = [pid for pid in members if pid != player_id]
        return [self.connections[pid].websocket for pid in members]

    async def _deliver(self, player_id: str, outbound: List[Outbound]) -> None:
        for item in outbound:
            targets = self._targets(player_id, item)
            if not targets:
                continue
            message = self._envelope(item.msg_type, item.payload)
            await asyncio.gather(*(socket.send(message) for socket in targets), return_exceptions=True)

    async def _send_to_player(self, player_id: str, msg_type: str, payload: Dict[str, object]) -> None:
        connection = self.connections.get(player_id)
        if connection:
            await self._send_json(connection.websocket, msg_type, payload)

    # Maintenance -----------------------------------------------------

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_s)
            await self.run_cleanup()

    async def run_cleanup(self) -> List[str]:
        removed = await self.dispatcher.cleanup_expired()
        self.rate_limit.cleanup()
        if removed:
            LOGGER.info("Removed %s expired sessions", len(removed))
        return removed

    async def _stats_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.stats_interval_s)
            self.log_stats()

    def log_stats(self) -> Dict[str, int]:
        stats = {
            "connections": len(self.connections),
            "sessions": self.registry.session_count,
            "players": self.registry.player_count,
        }
        LOGGER.info(
            "Server stats: connections=%s sessions=%s players=%s",
            stats["connections"],
            stats["sessions"],
            stats["players"],
        )
        return stats

    # Wire helpers ----------------------------------------------------

    def _client_ip(self, websocket: ServerConnection) -> str:
        address = getattr(websocket, "remote_address", None)
        if address:
            return str(address[0])
        return "unknown"

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: ServerConnection, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body: Dict[str, object] = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body, ensure_ascii=False)

    def _decode(self, raw: str) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return {}
        return message if isinstance(message, dict) else {}
