"""Runtime configuration helpers for the FleetSocket relay."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional


def _flag(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Immutable application configuration loaded from the environment."""

    debug: bool
    host: str
    port: int
    # WebSocket configuration
    websocket_cors_origins: str
    websocket_ping_interval: int
    websocket_ping_timeout: int
    async_mode: str
    # Redis configuration
    redis_host: Optional[str]
    redis_port: int
    redis_db: int
    redis_password: Optional[str]
    # Room configuration
    history_limit: int
    room_retention: int
    dedup_window_ms: int
    metrics_enabled: bool
    # Client configuration
    relay_url: str
    client_name: str
    default_room: str

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> "Settings":
        env = env if env is not None else os.environ
        return Settings(

            # toggle Flask debugger (disabled in prod)
            debug=_flag(env.get("FLASK_DEBUG", "false")),
            # the following comment disables bandit error (binding to all interfaces)
            host=env.get("FLASK_HOST", "0.0.0.0"),  # nosec B104 - Required for containerized deployment
            port=int(env.get("FLASK_PORT", "3001")),

            # websocket configuration
            websocket_cors_origins=env.get("WEBSOCKET_CORS_ORIGINS", "*"),
            websocket_ping_interval=int(env.get("WEBSOCKET_PING_INTERVAL", "25")),
            websocket_ping_timeout=int(env.get("WEBSOCKET_PING_TIMEOUT", "60")),
            async_mode=env.get("SOCKETIO_ASYNC_MODE", "eventlet"),

            # redis configuration (unset host runs a single in-memory instance)
            redis_host=env.get("REDIS_HOST") or None,
            redis_port=int(env.get("REDIS_PORT", "6379")),
            redis_db=int(env.get("REDIS_DB", "0")),
            redis_password=env.get("REDIS_PASSWORD") or None,

            # room configuration
            history_limit=int(env.get("HISTORY_LIMIT", "50")),
            room_retention=int(env.get("ROOM_RETENTION", "1000")),
            dedup_window_ms=int(env.get("DEDUP_WINDOW_MS", "1000")),
            metrics_enabled=_flag(env.get("METRICS_ENABLED", "true")),

            # client configuration
            relay_url=env.get("RELAY_URL", "http://localhost:3001"),
            client_name=env.get("RELAY_CLIENT_NAME", ""),
            default_room=env.get("RELAY_DEFAULT_ROOM", "General"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings loaded from environment variables."""

    return Settings.from_env()


settings = get_settings()
