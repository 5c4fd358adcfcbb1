"""Redis-backed message store for multi-process relay deployments.

Every relay process appends to and reads from the same Redis lists, and
subscribes to the rooms its own sessions have joined. A message published by
any process is therefore fanned out by every process that has an interested
session.

Key naming convention:
    - room:{room_id}:messages - bounded list of JSON envelopes, oldest first
    - room:{room_id}:pubsub   - channel carrying newly appended envelopes
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import redis

from common.message_store import DEFAULT_ROOM_RETENTION, EnvelopeHandler, MessageStore
from common.models import Envelope

logger = logging.getLogger(__name__)

SUBSCRIBER_MAX_RETRIES = 10
SUBSCRIBER_RETRY_DELAY = 3


@dataclass
class RedisConfig:
    """Redis connection configuration."""

    host: str
    port: int
    db: int
    password: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RedisConfig":
        """Create config from environment variables."""
        return cls(
            host=os.environ.get("REDIS_HOST", "localhost"),
            port=int(os.environ.get("REDIS_PORT", "6379")),
            db=int(os.environ.get("REDIS_DB", "0")),
            password=os.environ.get("REDIS_PASSWORD"),
        )


def _spawn_daemon(target: Callable[[], Any]) -> None:
    threading.Thread(target=target, daemon=True).start()


class RedisMessageStore(MessageStore):
    """Message store on Redis lists and pub/sub channels.

    Commands share one pooled connection; subscriptions use a separate
    ``PubSub`` connection drained by a background listener that is started on
    the first subscribe.
    """

    def __init__(
        self,
        config: Optional[RedisConfig] = None,
        retention: int = DEFAULT_ROOM_RETENTION,
        spawn: Optional[Callable[[Callable[[], Any]], Any]] = None,
    ):
        """Initialize the store.

        Args:
            config: Redis configuration. If None, loads from environment.
            retention: Maximum envelopes kept per room
            spawn: Starts the listener loop in the background. Defaults to a
                daemon thread; the server passes ``socketio.start_background_task``.
        """
        super().__init__(retention)
        self.config = config or RedisConfig.from_env()
        self._client: Optional[redis.Redis] = None
        self._subscriber_client: Optional[redis.Redis] = None
        self._pubsub: Optional[redis.client.PubSub] = None
        self._handlers: Dict[str, EnvelopeHandler] = {}
        self._spawn = spawn or _spawn_daemon
        self._listener_started = False
        self._closed = False

    @property
    def client(self) -> redis.Redis:
        """Get or create Redis client connection."""
        if self._client is None:
            self._client = redis.Redis(
                host=self.config.host,
                port=self.config.port,
                db=self.config.db,
                password=self.config.password,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=False,
            )
        return self._client

    @property
    def subscriber_client(self) -> redis.Redis:
        """Get or create the connection dedicated to pub/sub.

        A subscribed connection sits idle between messages, so it has no read
        timeout and relies on keepalive plus periodic health checks instead.
        """
        if self._subscriber_client is None:
            self._subscriber_client = redis.Redis(
                host=self.config.host,
                port=self.config.port,
                db=self.config.db,
                password=self.config.password,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=None,
                socket_keepalive=True,
                health_check_interval=30,
            )
        return self._subscriber_client

    def ping(self) -> bool:
        """Check Redis connection health."""
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error("redis_ping_failed error=%s", e)
            return False

    def close(self) -> None:
        """Close Redis connections and stop the listener."""
        self._closed = True
        if self._pubsub:
            self._pubsub.close()
            self._pubsub = None
        if self._subscriber_client:
            self._subscriber_client.close()
            self._subscriber_client = None
        if self._client:
            self._client.close()
            self._client = None
            logger.info("redis_connection_closed")

    # ==================== Key Naming ====================

    @staticmethod
    def room_list_key(room_id: str) -> str:
        """Get list key holding a room's envelopes."""
        return f"room:{room_id}:messages"

    @staticmethod
    def room_channel(room_id: str) -> str:
        """Get pub/sub channel name for a room."""
        return f"room:{room_id}:pubsub"

    # ==================== Storage ====================

    def append(self, room_id: str, envelope: Envelope) -> None:
        """Append an envelope and trim the list to the retention cap.

        RPUSH and LTRIM run in one MULTI/EXEC so no reader ever sees the list
        above the cap.
        """
        key = self.room_list_key(room_id)
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.rpush(key, json.dumps(envelope.to_dict()))
            pipe.ltrim(key, -self.retention, -1)
            pipe.execute()
        except redis.RedisError as e:
            logger.error("redis_append_failed room=%s error=%s", room_id, e)
            raise

    def range_recent(self, room_id: str, n: int) -> List[Envelope]:
        """Read the ``n`` most recent envelopes, oldest first.

        Entries that fail to parse are skipped and logged.
        """
        if n <= 0:
            return []
        key = self.room_list_key(room_id)
        try:
            raw_messages = self.client.lrange(key, -n, -1)
        except redis.RedisError as e:
            logger.error("redis_range_failed room=%s error=%s", room_id, e)
            raise

        envelopes = []
        for raw in raw_messages:
            try:
                envelopes.append(Envelope.from_dict(json.loads(raw)))
            except ValueError as e:
                logger.error("redis_envelope_parse_failed room=%s error=%s", room_id, e)
        return envelopes

    # ==================== Publishing ====================

    def publish(self, room_id: str, envelope: Envelope) -> int:
        """Publish an envelope to the room channel.

        Returns:
            Number of subscribers that received the message
        """
        channel = self.room_channel(room_id)
        try:
            count = self.client.publish(channel, json.dumps(envelope.to_dict()))
            logger.debug(
                "redis_event_published channel=%s id=%s subscribers=%d",
                channel, envelope.id, count
            )
            return count
        except redis.RedisError as e:
            logger.error("redis_publish_failed channel=%s error=%s", channel, e)
            raise

    # ==================== Subscribing ====================

    def subscribe(self, room_id: str, handler: EnvelopeHandler) -> None:
        """Subscribe to a room channel and start the listener if needed."""
        channel = self.room_channel(room_id)
        self._handlers[channel] = handler
        if self._pubsub is None:
            self._pubsub = self.subscriber_client.pubsub(ignore_subscribe_messages=True)
        try:
            self._pubsub.subscribe(channel)
        except redis.RedisError as e:
            self._handlers.pop(channel, None)
            logger.error("redis_subscribe_failed channel=%s error=%s", channel, e)
            raise
        logger.info("redis_subscribed channel=%s", channel)

        if not self._listener_started:
            self._listener_started = True
            self._spawn(self.listen_forever)
            logger.info("redis_subscriber_started")

    def listen_forever(
        self,
        max_retries: int = SUBSCRIBER_MAX_RETRIES,
        retry_delay: float = SUBSCRIBER_RETRY_DELAY,
    ) -> None:
        """Drain the pub/sub connection, reconnecting on connection errors and timeouts."""
        attempt = 0
        while not self._closed and self._pubsub is not None:
            try:
                for message in self._pubsub.listen():
                    attempt = 0
                    self.handle_message(message)
                if self._closed:
                    break
                logger.warning("redis_subscriber_disconnected - retrying in %ss", retry_delay)
            except (redis.ConnectionError, redis.TimeoutError) as e:
                attempt += 1
                if attempt >= max_retries:
                    logger.error("redis_subscriber_failed_all_attempts - giving up")
                    break
                logger.warning(
                    "redis_subscriber_connection_failed attempt=%d/%d error=%s - retrying in %ss",
                    attempt, max_retries, e, retry_delay
                )
            time.sleep(retry_delay)
        logger.info("redis_subscriber_stopped")

    def handle_message(self, message: Dict[str, Any]) -> None:
        """Route one raw pub/sub message to its room handler."""
        if message.get("type") != "message":
            return

        channel = message.get("channel")
        handler = self._handlers.get(channel)
        if handler is None:
            logger.debug("redis_message_unrouted channel=%s", channel)
            return

        try:
            envelope = Envelope.from_dict(json.loads(message["data"]))
        except (json.JSONDecodeError, ValueError) as e:
            logger.error("redis_message_parse_failed channel=%s error=%s", channel, e)
            return

        try:
            handler(envelope)
        except Exception as e:
            logger.error("redis_relay_error channel=%s error=%s", channel, e, exc_info=True)
