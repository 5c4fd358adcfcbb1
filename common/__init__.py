"""Common utilities shared by the relay server and client."""

from common.errors import RelayError, UnknownSessionError
from common.message_store import InMemoryMessageStore, MessageStore
from common.models import Envelope
from common.redis_client import RedisConfig, RedisMessageStore

__all__ = [
    "Envelope",
    "InMemoryMessageStore",
    "MessageStore",
    "RedisConfig",
    "RedisMessageStore",
    "RelayError",
    "UnknownSessionError",
]
