from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from pokdeng.models import SessionConfig


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 5000
    max_connections: int = 500
    max_connections_per_ip: int = 20
    rate_limit_max: int = 100
    rate_limit_window_s: float = 60.0
    cleanup_interval_s: float = 30 * 60
    session_ttl_s: float = 60 * 60
    stats_interval_s: float = 5 * 60
    default_session_id: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if env is None else env
        defaults = cls()
        return cls(
            port=_env_int(env, "PORT", defaults.port),
            max_connections=_env_int(env, "MAX_CONNECTIONS", defaults.max_connections),
            max_connections_per_ip=_env_int(env, "MAX_CONNECTIONS_PER_IP", defaults.max_connections_per_ip),
            # STATS_INTERVAL is given in milliseconds.
            stats_interval_s=_env_int(env, "STATS_INTERVAL", int(defaults.stats_interval_s * 1000)) / 1000,
            default_session_id=env.get("POKDENG_DEFAULT_SESSION") or None,
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
        )

    def session_config(self) -> SessionConfig:
        return SessionConfig(idle_ttl_s=self.session_ttl_s)
