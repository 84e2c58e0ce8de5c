import argparse
import asyncio
import logging

from .config import ServerConfig
from .server import PokdengServer


def main() -> None:
    env_config = ServerConfig.from_env()

    # Environment variables provide defaults; flags win when both are given.
    parser = argparse.ArgumentParser(description="Pokdeng real-time table server")
    parser.add_argument("--host", default=env_config.host)
    parser.add_argument("--port", type=int, default=env_config.port)
    parser.add_argument("--max-connections", type=int, default=env_config.max_connections)
    parser.add_argument("--max-connections-per-ip", type=int, default=env_config.max_connections_per_ip)
    parser.add_argument("--rate-limit", type=int, default=env_config.rate_limit_max, help="Actions allowed per window")
    parser.add_argument("--rate-window", type=float, default=env_config.rate_limit_window_s, help="Rate limit window in seconds")
    parser.add_argument("--session-ttl", type=float, default=env_config.session_ttl_s, help="Idle seconds before a table expires")
    parser.add_argument("--cleanup-interval", type=float, default=env_config.cleanup_interval_s, help="Seconds between idle sweeps")
    parser.add_argument("--stats-interval", type=float, default=env_config.stats_interval_s, help="Seconds between stats log lines")
    parser.add_argument(
        "--single-table",
        default=env_config.default_session_id,
        metavar="SESSION_ID",
        help="Seat every player without a session hint at this one table",
    )
    parser.add_argument("--log-level", default=env_config.log_level)
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = ServerConfig(
        host=args.host,
        port=args.port,
        max_connections=args.max_connections,
        max_connections_per_ip=args.max_connections_per_ip,
        rate_limit_max=args.rate_limit,
        rate_limit_window_s=args.rate_window,
        cleanup_interval_s=args.cleanup_interval,
        session_ttl_s=args.session_ttl,
        stats_interval_s=args.stats_interval,
        default_session_id=args.single_table,
        log_level=args.log_level,
    )

    server = PokdengServer(config)
    asyncio.run(server.start())


if __name__ == "__main__":
    main()
