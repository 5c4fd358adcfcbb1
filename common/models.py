"""Message envelope shared by the relay server, the stores and the client."""

from __future__ import annotations

import random
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def guest_name() -> str:
    """Generate a default display name."""
    return f"Guest-{random.randrange(1000)}"  # nosec B311 - not security sensitive


@dataclass(frozen=True)
class Envelope:
    """An immutable chat message as persisted and delivered.

    The wire/storage form uses the keys ``id``, ``roomId``, ``from``,
    ``content`` and ``ts`` (epoch milliseconds).
    """

    id: str
    room_id: str
    sender: str
    content: str
    ts: int

    @classmethod
    def create(
        cls,
        room_id: str,
        sender: str,
        content: str,
        ts: Optional[int] = None,
    ) -> "Envelope":
        """Build a new envelope with a fresh identifier."""
        return cls(
            id=str(uuid.uuid4()),
            room_id=room_id,
            sender=sender,
            content=content,
            ts=now_ms() if ts is None else ts,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "roomId": self.room_id,
            "from": self.sender,
            "content": self.content,
            "ts": self.ts,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Envelope":
        """Parse the wire form.

        Raises:
            ValueError: if a required key is missing or has the wrong type
        """
        try:
            return cls(
                id=str(data["id"]),
                room_id=str(data["roomId"]),
                sender=str(data["from"]),
                content=str(data["content"]),
                ts=int(data["ts"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid envelope: {e}") from e
