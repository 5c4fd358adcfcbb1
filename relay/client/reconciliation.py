"""Client-side reconciliation: optimistic echo, outbound buffering and dedup.

A message the user sends is rendered immediately with a client-generated id.
The authoritative copy comes back later as a room broadcast carrying a
server-generated id, so the two are matched heuristically: same content,
sender and room, with timestamps less than the dedup window apart.

Sends issued while the transport is not ready are queued and transmitted in
order as soon as the connection (re)opens, after the name and join requests.
An item leaves the queue when it is handed to the transport, not when the
server acknowledges it.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol

from common.models import guest_name, now_ms

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW_MS = 1000


class Transport(Protocol):
    """What the reconciliation layer needs from a connection."""

    def is_open(self) -> bool: ...

    def emit(self, event: str, data: Dict[str, Any]) -> None: ...


def is_duplicate(
    local: Dict[str, Any],
    incoming: Dict[str, Any],
    window_ms: int = DEFAULT_DEDUP_WINDOW_MS,
) -> bool:
    """Whether ``incoming`` is the server copy of the already rendered ``local``."""
    try:
        close_in_time = abs(int(local.get("ts", 0)) - int(incoming.get("ts", 0))) < window_ms
    except (TypeError, ValueError):
        return False
    return (
        local.get("content") == incoming.get("content")
        and local.get("from") == incoming.get("from")
        and local.get("roomId") == incoming.get("roomId")
        and close_in_time
    )


class OutboundBuffer:
    """FIFO queue of send requests awaiting a ready transport."""

    def __init__(self):
        self._items: Deque[Dict[str, Any]] = deque()

    def __len__(self) -> int:
        return len(self._items)

    def push(self, request: Dict[str, Any]) -> None:
        self._items.append(request)

    def pop(self) -> Optional[Dict[str, Any]]:
        return self._items.popleft() if self._items else None

    def peek_all(self) -> List[Dict[str, Any]]:
        return list(self._items)


class ReconciliationLayer:
    """Keeps one client's rendered message list consistent with the server."""

    def __init__(
        self,
        transport: Transport,
        room_id: str,
        name: Optional[str],
        dedup_window_ms: int = DEFAULT_DEDUP_WINDOW_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.transport = transport
        self.room_id = room_id
        # unnamed clients announce their own guest name so echoes match broadcasts
        self.name = name.strip() if isinstance(name, str) and name.strip() else guest_name()
        self.dedup_window_ms = dedup_window_ms
        self.clock = clock
        self.outbox = OutboundBuffer()
        self.resolved_name: Optional[str] = None
        self.last_sent: Optional[Dict[str, Any]] = None
        self._messages: List[Dict[str, Any]] = []
        self._ready = False
        self._lock = threading.RLock()

    @property
    def messages(self) -> List[Dict[str, Any]]:
        """Snapshot of the rendered message list."""
        with self._lock:
            return list(self._messages)

    @property
    def ready(self) -> bool:
        return self._ready and self.transport.is_open()

    def send(self, content: str) -> Optional[Dict[str, Any]]:
        """Echo a message locally and transmit or buffer it.

        Returns:
            The local envelope, or None for blank content
        """
        text = content.strip() if isinstance(content, str) else ""
        if not text:
            return None

        with self._lock:
            local = {
                "id": str(uuid.uuid4()),
                "roomId": self.room_id,
                "from": self.name,
                "content": text,
                "ts": self.clock(),
            }
            self._messages.append(local)

            request = {"type": "send", "roomId": self.room_id, "content": text}
            if self.ready:
                self.transport.emit("send", request)
            else:
                self.outbox.push(request)
                logger.debug("send_buffered room=%s pending=%d", self.room_id, len(self.outbox))
        return local

    def on_ready(self) -> None:
        """Announce name and room, then flush buffered sends in order."""
        with self._lock:
            self.transport.emit("setName", {"type": "setName", "name": self.name})
            self.transport.emit("join", {"type": "join", "roomId": self.room_id})

            flushed = 0
            while True:
                request = self.outbox.pop()
                if request is None:
                    break
                self.transport.emit("send", request)
                flushed += 1

            self._ready = True
        logger.info("transport_ready room=%s flushed=%d", self.room_id, flushed)

    def on_disconnect(self) -> None:
        with self._lock:
            self._ready = False
        logger.info("transport_disconnected room=%s", self.room_id)

    def on_history(self, data: Dict[str, Any]) -> None:
        """Replace the rendered list with the server's snapshot.

        Optimistic entries the server has not echoed yet are dropped along
        with everything else.
        """
        if not isinstance(data, dict) or data.get("roomId") != self.room_id:
            return
        messages = data.get("messages") or []
        with self._lock:
            self._messages = [m for m in messages if isinstance(m, dict)]
        logger.debug("history_applied room=%s count=%d", self.room_id, len(self._messages))

    def on_message(self, data: Dict[str, Any]) -> None:
        """Append a room broadcast unless it duplicates a rendered entry."""
        if not isinstance(data, dict):
            return
        incoming = data.get("payload") or data.get("message")
        if not isinstance(incoming, dict) or incoming.get("roomId") != self.room_id:
            return

        with self._lock:
            if any(is_duplicate(m, incoming, self.dedup_window_ms) for m in self._messages):
                logger.debug("broadcast_deduplicated id=%s", incoming.get("id"))
                return
            self._messages.append(incoming)

    def on_name_set(self, data: Dict[str, Any]) -> None:
        # Later local echoes must carry the name the server stamps on broadcasts.
        name = data.get("name") if isinstance(data, dict) else None
        if isinstance(name, str) and name:
            with self._lock:
                self.resolved_name = name
                self.name = name

    def on_sent(self, data: Dict[str, Any]) -> None:
        if isinstance(data, dict):
            self.last_sent = data.get("message")

    def switch_room(self, room_id: str) -> None:
        """Make ``room_id`` the active room and request its history."""
        with self._lock:
            self.room_id = room_id
            self._messages = []
            if self.ready:
                self.transport.emit("join", {"type": "join", "roomId": room_id})
