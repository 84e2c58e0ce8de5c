import asyncio
import json

import websockets

from host.config import ServerConfig
from host.server import ClientConnection, PokdengServer

from .helpers import FakeClock, create_registry


# Fake sockets so we can exercise async paths without opening real connections.
class DummyWebSocket:
    def __init__(self, incoming=None, ip: str = "127.0.0.1") -> None:
        self.sent: list[str] = []
        self.closed = False
        self.remote_address = (ip, 50_000)
        self._incoming = list(incoming or [])

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, *args, **kwargs) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self._incoming:
            yield message

    def messages(self) -> list[dict]:
        return [json.loads(raw) for raw in self.sent]

    def types(self) -> list[str]:
        return [message["type"] for message in self.messages()]


class ClosingWebSocket(DummyWebSocket):
    async def send(self, message: str) -> None:
        raise websockets.ConnectionClosed(None, None)


def setup_server(num_players: int = 2, **config_overrides):
    server = PokdengServer(ServerConfig(**config_overrides), registry=create_registry())
    sockets: list[DummyWebSocket] = []
    for idx in range(num_players):
        websocket = DummyWebSocket()
        server._register(ClientConnection(player_id=f"conn-{idx}", ip="127.0.0.1", websocket=websocket))
        sockets.append(websocket)
    return server, sockets


def join(idx: int, session_id: str = "t1") -> str:
    return json.dumps({"type": "join", "session_id": session_id, "player_name": f"Player{idx}"})


def test_join_fans_out_to_player_others_and_session():
    server, sockets = setup_server()

    async def scenario():
        await server._handle_message("conn-0", join(0))
        await server._handle_message("conn-1", join(1))

    asyncio.run(scenario())

    assert sockets[0].types() == ["session_joined", "host_changed", "chat", "player_joined", "host_changed"]
    assert sockets[1].types() == ["session_joined", "host_changed", "chat"]
    envelope = sockets[1].messages()[0]
    assert envelope["v"] == 1
    assert "ts" in envelope
    assert envelope["session_id"] == "t1"


def test_dealt_cards_only_reach_the_dealer():
    server, sockets = setup_server()

    async def scenario():
        await server._handle_message("conn-0", join(0))
        await server._handle_message("conn-1", join(1))
        for socket in sockets:
            socket.sent.clear()
        await server._handle_message("conn-1", json.dumps({"type": "deal"}))

    asyncio.run(scenario())

    assert sockets[1].types() == ["chat", "cards", "bets_locked"]
    assert sockets[0].types() == ["chat", "bets_locked"]


def test_sessions_are_isolated_from_each_other():
    server, sockets = setup_server(num_players=3)

    async def scenario():
        await server._handle_message("conn-0", join(0, "t1"))
        await server._handle_message("conn-1", join(1, "t2"))
        sockets[1].sent.clear()
        await server._handle_message("conn-0", json.dumps({"type": "chat", "message": "hello"}))

    asyncio.run(scenario())

    assert "chat" in sockets[0].types()
    assert sockets[1].sent == []
    assert sockets[2].sent == []


def test_rate_limit_rejects_excess_actions():
    server, sockets = setup_server(num_players=1, rate_limit_max=2)

    async def scenario():
        await server._handle_message("conn-0", join(0))
        await server._handle_message("conn-0", json.dumps({"type": "get_stats"}))
        await server._handle_message("conn-0", json.dumps({"type": "get_stats"}))

    asyncio.run(scenario())

    last = sockets[0].messages()[-1]
    assert last["type"] == "error"
    assert last["code"] == "RATE_LIMIT"


def test_malformed_json_is_rejected():
    server, sockets = setup_server(num_players=1)
    asyncio.run(server._handle_message("conn-0", "{not json"))
    asyncio.run(server._handle_message("conn-0", "[1, 2]"))
    codes = [message["code"] for message in sockets[0].messages()]
    assert codes == ["BAD_SCHEMA", "BAD_SCHEMA"]


def test_connection_lifecycle_joins_plays_and_leaves():
    server = PokdengServer(ServerConfig(), registry=create_registry())
    websocket = DummyWebSocket(
        incoming=[
            json.dumps({"type": "join", "session_id": "t1", "player_name": "Alice"}),
            json.dumps({"type": "place_bet", "amount": 25}),
            json.dumps({"type": "deal"}),
        ]
    )

    asyncio.run(server._handle_connection(websocket))

    assert websocket.types() == [
        "session_joined",
        "host_changed",
        "chat",
        "bet_placed",
        "chat",
        "cards",
        "bets_locked",
    ]
    assert server.connections == {}
    assert server.connections_by_ip == {}
    assert server.registry.get_session("t1") is None


def test_disconnect_notifies_remaining_players():
    server, sockets = setup_server(num_players=1)
    leaving = DummyWebSocket(incoming=[join(9)])

    async def scenario():
        await server._handle_message("conn-0", join(0))
        await server.dispatcher.handle("conn-0", {"type": "become_host"})
        sockets[0].sent.clear()
        await server._handle_connection(leaving)

    asyncio.run(scenario())

    assert "player_joined" in sockets[0].types()
    assert sockets[0].types()[-1] == "player_left"
    session = server.registry.get_session("t1")
    assert list(session.players) == ["conn-0"]


def test_per_ip_limit_closes_new_connection():
    server = PokdengServer(ServerConfig(max_connections_per_ip=1), registry=create_registry())
    server._register(ClientConnection(player_id="conn-0", ip="10.0.0.1", websocket=DummyWebSocket(ip="10.0.0.1")))
    websocket = DummyWebSocket(ip="10.0.0.1")

    asyncio.run(server._handle_connection(websocket))

    assert websocket.closed
    assert websocket.messages()[0]["code"] == "TOO_MANY_CONNECTIONS"
    assert len(server.connections) == 1


def test_global_limit_closes_new_connection():
    server = PokdengServer(ServerConfig(max_connections=1), registry=create_registry())
    server._register(ClientConnection(player_id="conn-0", ip="10.0.0.1", websocket=DummyWebSocket(ip="10.0.0.1")))
    websocket = DummyWebSocket(ip="10.0.0.2")

    asyncio.run(server._handle_connection(websocket))

    assert websocket.closed
    assert websocket.messages()[0]["code"] == "SERVER_FULL"


def test_send_json_swallows_closed_connection():
    server = PokdengServer(ServerConfig(), registry=create_registry())
    asyncio.run(server._send_json(ClosingWebSocket(), "chat", {"message": "hi"}))


def test_run_cleanup_purges_idle_tables():
    clock = FakeClock()
    server = PokdengServer(ServerConfig(), registry=create_registry(clock=clock))
    websocket = DummyWebSocket()
    server._register(ClientConnection(player_id="conn-0", ip="127.0.0.1", websocket=websocket))

    async def scenario():
        await server._handle_message("conn-0", join(0))
        clock.advance(3_601)
        removed = await server.run_cleanup()
        await server._handle_message("conn-0", json.dumps({"type": "deal"}))
        return removed

    removed = asyncio.run(scenario())

    assert removed == ["t1"]
    last = websocket.messages()[-1]
    assert last["code"] == "SESSION_NOT_FOUND"


def test_log_stats_counts_connections_sessions_and_players():
    server, _ = setup_server()

    async def scenario():
        await server._handle_message("conn-0", join(0))

    asyncio.run(scenario())
    assert server.log_stats() == {"connections": 2, "sessions": 1, "players": 1}
