"""Room fan-out engine.

Each process subscribes to a room's broker channel the first time one of its
sessions joins that room, and from then on delivers every envelope published
there to the local sessions whose room set contains it.

Delivery is fire-and-forget: one failed recipient is logged and skipped, it
never stops delivery to the rest and is never retried.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Hashable, Set

from common.message_store import MessageStore
from common.models import Envelope
from relay.server.metrics import FANOUT_DELIVERIES, FANOUT_FAILURES
from relay.server.sessions import SessionRegistry

logger = logging.getLogger(__name__)

# (connection, event name, payload)
Deliver = Callable[[Hashable, str, Dict[str, Any]], None]


class RoomFanOut:
    """Per-process subscription state and delivery loop."""

    def __init__(self, registry: SessionRegistry, store: MessageStore, deliver: Deliver):
        self.registry = registry
        self.store = store
        self.deliver = deliver
        self._subscribed: Set[str] = set()
        self._lock = threading.Lock()

    def is_subscribed(self, room_id: str) -> bool:
        return room_id in self._subscribed

    def subscribed_rooms(self) -> Set[str]:
        return set(self._subscribed)

    def ensure_subscribed(self, room_id: str) -> bool:
        """Subscribe to the room channel unless already done.

        The room is marked before the store call so a join that interleaves
        while the subscribe is in flight does not subscribe a second time.

        Returns:
            True if this call issued the subscribe
        """
        with self._lock:
            if room_id in self._subscribed:
                return False
            self._subscribed.add(room_id)

        try:
            self.store.subscribe(room_id, self.dispatch)
        except Exception:
            with self._lock:
                self._subscribed.discard(room_id)
            raise
        logger.info("room_subscribed room=%s rooms=%d", room_id, len(self._subscribed))
        return True

    def dispatch(self, envelope: Envelope) -> int:
        """Deliver an envelope to every local session joined to its room.

        Returns:
            Number of sessions that received the message
        """
        payload = {"type": "message", "payload": envelope.to_dict()}
        delivered = 0

        for session in self.registry.sessions():
            if envelope.room_id not in session.rooms:
                continue
            try:
                self.deliver(session.connection, "message", payload)
                delivered += 1
                FANOUT_DELIVERIES.inc()
            except Exception as e:
                FANOUT_FAILURES.inc()
                logger.warning(
                    "fanout_delivery_failed room=%s session=%s error=%s",
                    envelope.room_id, session.session_id, e
                )

        logger.debug("fanout_dispatched room=%s id=%s delivered=%d", envelope.room_id, envelope.id, delivered)
        return delivered
