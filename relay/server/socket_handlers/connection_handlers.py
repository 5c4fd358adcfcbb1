"""Socket.IO connection lifecycle: one session per live connection."""

import logging

from flask import current_app, request

logger = logging.getLogger(__name__)


def register_handlers(socketio):
    """Register connect/disconnect handlers."""

    @socketio.on('connect')
    def handle_connect(auth=None):
        registry = current_app.extensions['session_registry']
        session_id = registry.register(request.sid)
        logger.info("client_connected sid=%s session=%s", request.sid, session_id)

    @socketio.on('disconnect')
    def handle_disconnect(reason=None):
        registry = current_app.extensions['session_registry']
        session_id = registry.unregister_connection(request.sid)
        logger.info("client_disconnected sid=%s session=%s reason=%s", request.sid, session_id, reason)
