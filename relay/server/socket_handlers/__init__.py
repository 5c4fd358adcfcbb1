"""Socket.IO event handlers for the relay server.

These handlers only translate between the wire protocol and the core:
1. Register and unregister sessions as connections come and go
2. Hand setName/join/send requests to the message pipeline
3. Reply to the requesting connection (nameSet, history, sent)

Room broadcasts are delivered by the fan-out engine, not from here.
"""

from relay.server.socket_handlers import chat_handlers
from relay.server.socket_handlers import connection_handlers

__all__ = ['chat_handlers', 'connection_handlers']
