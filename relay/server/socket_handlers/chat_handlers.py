"""Socket.IO handlers for the chat wire protocol.

Client -> server events: ``setName``, ``join``, ``send``. Clients that push
typed JSON frames through Socket.IO's plain ``send()`` land on the ``message``
event and are routed by their ``type`` field.

Malformed or invalid requests are dropped without a reply.
"""

import json
import logging

from flask import current_app, request
from flask_socketio import emit

from common.errors import UnknownSessionError

logger = logging.getLogger(__name__)


def _payload(data):
    """Return the request as a dict, or None if it is malformed."""
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            data = None
    if not isinstance(data, dict):
        logger.debug("malformed_payload_dropped sid=%s", request.sid)
        return None
    return data


def _current_session_id():
    registry = current_app.extensions['session_registry']
    session_id = registry.session_id_for(request.sid)
    if session_id is None:
        logger.error("session_missing sid=%s", request.sid)
        raise UnknownSessionError(request.sid)
    return session_id


def register_handlers(socketio):
    """Register chat Socket.IO event handlers."""

    @socketio.on('setName')
    def handle_set_name(data):
        """Set the display name.

        Expected data: {"name": "Ada"}
        """
        payload = _payload(data)
        if payload is None:
            return

        pipeline = current_app.extensions['chat_pipeline']
        name = pipeline.handle_set_name(_current_session_id(), payload.get('name'))
        emit('nameSet', {'type': 'nameSet', 'name': name})

    @socketio.on('join')
    def handle_join(data):
        """Join a room and reply with its recent history.

        Expected data: {"roomId": "General"}
        """
        payload = _payload(data)
        if payload is None:
            return

        pipeline = current_app.extensions['chat_pipeline']
        room_id = payload.get('roomId')
        history = pipeline.handle_join(_current_session_id(), room_id)
        if history is None:
            return

        emit('history', {
            'type': 'history',
            'roomId': room_id,
            'messages': [envelope.to_dict() for envelope in history],
        })

    @socketio.on('send')
    def handle_send(data):
        """Persist and broadcast a chat message.

        Expected data: {"roomId": "General", "content": "hello"}

        The sender gets a direct ``sent`` acknowledgment in addition to the
        ``message`` broadcast delivered through the room subscription.
        """
        payload = _payload(data)
        if payload is None:
            return

        pipeline = current_app.extensions['chat_pipeline']
        envelope = pipeline.handle_send(
            _current_session_id(), payload.get('roomId'), payload.get('content')
        )
        if envelope is None:
            return

        emit('sent', {'type': 'sent', 'message': envelope.to_dict()})

    typed_handlers = {
        'setName': handle_set_name,
        'join': handle_join,
        'send': handle_send,
    }

    @socketio.on('message')
    def handle_typed_frame(data):
        """Route a {"type": ...} frame to the matching handler."""
        payload = _payload(data)
        if payload is None:
            return

        handler = typed_handlers.get(payload.get('type'))
        if handler is None:
            logger.debug("unknown_frame_type_dropped sid=%s type=%s", request.sid, payload.get('type'))
            return
        handler(payload)
