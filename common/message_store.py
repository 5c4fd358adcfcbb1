"""Message store interface consumed by the relay core.

A message store is two things per room: a bounded, append-only list of
envelopes and a publish/subscribe channel. The relay never talks to a storage
backend directly; it goes through this interface so the same core runs
against Redis (multi-process) or purely in memory (single instance, tests).
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Deque, Dict, List

from common.models import Envelope

logger = logging.getLogger(__name__)

DEFAULT_ROOM_RETENTION = 1000

EnvelopeHandler = Callable[[Envelope], None]


class MessageStore(ABC):
    """Ordered per-room storage plus per-room pub/sub."""

    def __init__(self, retention: int = DEFAULT_ROOM_RETENTION):
        self.retention = retention

    @abstractmethod
    def append(self, room_id: str, envelope: Envelope) -> None:
        """Append to the room's list, evicting the oldest past ``retention``."""

    @abstractmethod
    def range_recent(self, room_id: str, n: int) -> List[Envelope]:
        """Return up to ``n`` most recent envelopes, oldest first."""

    @abstractmethod
    def publish(self, room_id: str, envelope: Envelope) -> int:
        """Publish on the room's channel. Returns the subscriber count."""

    @abstractmethod
    def subscribe(self, room_id: str, handler: EnvelopeHandler) -> None:
        """Invoke ``handler`` for every envelope published to the room."""

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


class InMemoryMessageStore(MessageStore):
    """Process-local store used in single-instance mode.

    Publishing calls subscribed handlers synchronously, so it only fans out
    within the current process.
    """

    def __init__(self, retention: int = DEFAULT_ROOM_RETENTION):
        super().__init__(retention)
        self._rooms: Dict[str, Deque[Envelope]] = {}
        self._handlers: Dict[str, List[EnvelopeHandler]] = {}
        self._lock = threading.Lock()

    def append(self, room_id: str, envelope: Envelope) -> None:
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                room = self._rooms[room_id] = deque(maxlen=self.retention)
            room.append(envelope)

    def range_recent(self, room_id: str, n: int) -> List[Envelope]:
        if n <= 0:
            return []
        with self._lock:
            room = self._rooms.get(room_id)
            if not room:
                return []
            return list(room)[-n:]

    def publish(self, room_id: str, envelope: Envelope) -> int:
        handlers = list(self._handlers.get(room_id, ()))
        for handler in handlers:
            handler(envelope)
        logger.debug("memory_event_published room=%s subscribers=%d", room_id, len(handlers))
        return len(handlers)

    def subscribe(self, room_id: str, handler: EnvelopeHandler) -> None:
        self._handlers.setdefault(room_id, []).append(handler)
        logger.info("memory_subscribed room=%s", room_id)

    def room_size(self, room_id: str) -> int:
        room = self._rooms.get(room_id)
        return len(room) if room else 0
