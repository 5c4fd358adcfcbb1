"""Message pipeline: send, join/history replay and name changes.

Every store call here may suspend the current green thread, so other
connections' events can run between a call's start and its completion. The
pipeline reads what it needs from the session before the first store call and
never assumes the session still exists afterwards.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from common.message_store import MessageStore
from common.models import Envelope, now_ms
from relay.server.fanout import RoomFanOut
from relay.server.metrics import MESSAGES_PERSISTED
from relay.server.sessions import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class MessagePipeline:
    """Validates, timestamps, persists and publishes chat messages."""

    def __init__(
        self,
        registry: SessionRegistry,
        fanout: RoomFanOut,
        store: MessageStore,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], int] = now_ms,
    ):
        self.registry = registry
        self.fanout = fanout
        self.store = store
        self.history_limit = history_limit
        self.clock = clock

    def handle_set_name(self, session_id: str, name: Optional[str]) -> str:
        return self.registry.set_name(session_id, name)

    def handle_join(self, session_id: str, room_id: object) -> Optional[List[Envelope]]:
        """Join a room and return its history snapshot.

        Returns:
            Up to ``history_limit`` envelopes, oldest first, or None when the
            room id is missing
        """
        if not isinstance(room_id, str) or not room_id:
            logger.debug("join_dropped session=%s reason=no_room", session_id)
            return None

        self.registry.join(session_id, room_id)
        self.fanout.ensure_subscribed(room_id)
        history = self.store.range_recent(room_id, self.history_limit)
        logger.info("history_replayed session=%s room=%s count=%d", session_id, room_id, len(history))
        return history

    def handle_send(self, session_id: str, room_id: object, content: object) -> Optional[Envelope]:
        """Persist and publish a message.

        Invalid sends (missing room, blank content) are dropped without a
        reply.

        Returns:
            The stored envelope, or None if the send was dropped
        """
        if not isinstance(room_id, str) or not room_id:
            logger.debug("send_dropped session=%s reason=no_room", session_id)
            return None
        text = content.strip() if isinstance(content, str) else ""
        if not text:
            logger.debug("send_dropped session=%s room=%s reason=empty", session_id, room_id)
            return None

        sender = self.registry.get(session_id).name
        envelope = Envelope.create(room_id, sender, text, ts=self.clock())

        self.store.append(room_id, envelope)
        self.store.publish(room_id, envelope)
        MESSAGES_PERSISTED.inc()

        logger.info("chat_message_published session=%s room=%s id=%s", session_id, room_id, envelope.id)
        return envelope
