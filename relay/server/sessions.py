"""Session registry: live connections, their display names and joined rooms.

The registry is the only owner of session state. It is keyed by an opaque
session id and keeps a connection -> session index so socket handlers can
resolve the session of the current ``request.sid``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Set

from common.errors import UnknownSessionError
from common.models import guest_name

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """One live connection."""

    session_id: str
    connection: Hashable
    name: str
    rooms: Set[str] = field(default_factory=set)


class SessionRegistry:
    """Tracks every live session on this process."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._by_connection: Dict[Hashable, str] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def register(self, connection: Hashable) -> str:
        """Create a session for a new connection and return its id."""
        session_id = uuid.uuid4().hex
        session = Session(session_id=session_id, connection=connection, name=guest_name())
        self._sessions[session_id] = session
        self._by_connection[connection] = session_id
        logger.info("session_registered session=%s name=%s total=%d", session_id, session.name, len(self))
        return session_id

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            logger.error("session_lookup_failed session=%s", session_id)
            raise UnknownSessionError(session_id)
        return session

    def session_id_for(self, connection: Hashable) -> Optional[str]:
        return self._by_connection.get(connection)

    def set_name(self, session_id: str, name: Optional[str]) -> str:
        """Overwrite the display name, falling back to a guest name if empty.

        Returns:
            The resolved name
        """
        session = self.get(session_id)
        resolved = name.strip() if isinstance(name, str) else ""
        session.name = resolved or guest_name()
        logger.debug("session_name_set session=%s name=%s", session_id, session.name)
        return session.name

    def join(self, session_id: str, room_id: str) -> bool:
        """Add a room to the session's set.

        Returns:
            True if the room was not already joined
        """
        session = self.get(session_id)
        if room_id in session.rooms:
            return False
        session.rooms.add(room_id)
        logger.info("session_joined session=%s room=%s", session_id, room_id)
        return True

    def unregister(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            logger.error("session_unregister_failed session=%s", session_id)
            raise UnknownSessionError(session_id)
        self._by_connection.pop(session.connection, None)
        logger.info("session_unregistered session=%s total=%d", session_id, len(self))

    def unregister_connection(self, connection: Hashable) -> Optional[str]:
        """Remove the session bound to a connection, if any."""
        session_id = self._by_connection.get(connection)
        if session_id is not None:
            self.unregister(session_id)
        return session_id

    def sessions(self) -> List[Session]:
        """Snapshot of all sessions, safe to iterate across suspension points."""
        return list(self._sessions.values())
