"""Socket.IO client that drives the reconciliation layer.

python-socketio reconnects automatically; every (re)connect re-announces the
name and room and flushes the outbound buffer.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import socketio

from common.utils.config import Settings, settings as default_settings
from relay.client.reconciliation import ReconciliationLayer

logger = logging.getLogger(__name__)


class SocketIOTransport:
    """Adapts a ``socketio.Client`` to the reconciliation layer."""

    def __init__(self, sio: socketio.Client):
        self.sio = sio

    def is_open(self) -> bool:
        return self.sio.connected

    def emit(self, event: str, data: Dict[str, Any]) -> None:
        self.sio.emit(event, data)


class RelayClient:
    """A chat client bound to one active room."""

    def __init__(
        self,
        url: Optional[str] = None,
        name: Optional[str] = None,
        room_id: Optional[str] = None,
        sio: Optional[socketio.Client] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or default_settings
        self.url = url or settings.relay_url
        self.sio = sio or socketio.Client(reconnection=True)
        self.layer = ReconciliationLayer(
            SocketIOTransport(self.sio),
            room_id=room_id or settings.default_room,
            name=name if name is not None else settings.client_name,
            dedup_window_ms=settings.dedup_window_ms,
        )
        self._register_handlers()

    def _register_handlers(self) -> None:
        self.sio.on('connect', self._on_connect)
        self.sio.on('disconnect', self._on_disconnect)
        self.sio.on('nameSet', self.layer.on_name_set)
        self.sio.on('history', self.layer.on_history)
        self.sio.on('message', self.layer.on_message)
        self.sio.on('sent', self.layer.on_sent)

    def _on_connect(self) -> None:
        logger.info("relay_connected url=%s", self.url)
        self.layer.on_ready()

    def _on_disconnect(self, reason=None) -> None:
        logger.info("relay_disconnected url=%s reason=%s", self.url, reason)
        self.layer.on_disconnect()

    @property
    def connected(self) -> bool:
        return self.layer.ready

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return self.layer.messages

    def connect(self) -> None:
        self.sio.connect(self.url, transports=['websocket'])

    def disconnect(self) -> None:
        self.sio.disconnect()

    def send(self, content: str) -> Optional[Dict[str, Any]]:
        return self.layer.send(content)

    def switch_room(self, room_id: str) -> None:
        self.layer.switch_room(room_id)

    def wait(self) -> None:
        self.sio.wait()
