import pytest

from host.config import ServerConfig
from host.security import (
    InvalidMessage,
    SocketRateLimit,
    sanitize_input,
    validate_message,
    validate_player_name,
)
from pokdeng.errors import InvalidPlayerName

from .helpers import FakeClock


def test_rate_limit_blocks_until_window_drains():
    clock = FakeClock(start=0.0)
    limiter = SocketRateLimit(max_requests=2, window_s=10, clock=clock)
    assert limiter.check_limit("c1")
    assert limiter.check_limit("c1")
    assert not limiter.check_limit("c1")
    assert limiter.check_limit("c2")

    clock.advance(5)
    assert not limiter.check_limit("c1")
    clock.advance(6)
    assert limiter.check_limit("c1")


def test_rate_limit_cleanup_and_forget():
    clock = FakeClock(start=0.0)
    limiter = SocketRateLimit(max_requests=5, window_s=10, clock=clock)
    limiter.check_limit("c1")
    limiter.check_limit("c2")
    limiter.forget("c2")
    assert set(limiter.clients) == {"c1"}
    clock.advance(11)
    limiter.cleanup()
    assert limiter.clients == {}


def test_sanitize_input_escapes_markup():
    assert sanitize_input("  <script>alert('x')</script> ") == "&lt;script&gt;alert(&#x27;x&#x27;)&lt;/script&gt;"
    assert sanitize_input(None) == ""
    assert sanitize_input(42) == ""


def test_player_name_length_bounds():
    assert validate_player_name("Bo") == "Bo"
    with pytest.raises(InvalidPlayerName):
        validate_player_name("B")
    with pytest.raises(InvalidPlayerName):
        validate_player_name("x" * 21)
    with pytest.raises(InvalidPlayerName):
        validate_player_name("")


def test_validate_message_requires_short_text():
    assert validate_message({"message": "hello"}) == "hello"
    with pytest.raises(InvalidMessage):
        validate_message({})
    with pytest.raises(InvalidMessage):
        validate_message({"message": 5})
    with pytest.raises(InvalidMessage, match="too long"):
        validate_message({"message": "x" * 501})


def test_server_config_reads_environment():
    config = ServerConfig.from_env(
        {
            "PORT": "8080",
            "MAX_CONNECTIONS": "abc",
            "MAX_CONNECTIONS_PER_IP": "3",
            "STATS_INTERVAL": "1500",
            "LOG_LEVEL": "debug",
            "POKDENG_DEFAULT_SESSION": "global_pokdeng_session",
        }
    )
    assert config.port == 8080
    assert config.max_connections == 500
    assert config.max_connections_per_ip == 3
    assert config.stats_interval_s == 1.5
    assert config.log_level == "DEBUG"
    assert config.default_session_id == "global_pokdeng_session"


def test_server_config_defaults_and_session_config():
    config = ServerConfig.from_env({})
    assert config.port == 5000
    assert config.stats_interval_s == 300
    assert config.default_session_id is None
    assert ServerConfig(session_ttl_s=90).session_config().idle_ttl_s == 90
