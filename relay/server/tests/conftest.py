"""Pytest configuration and fixtures for relay server tests."""

from collections import deque
from typing import Any, Dict, List

import pytest

from common.message_store import InMemoryMessageStore
from common.utils.config import Settings
from relay.server.fanout import RoomFanOut
from relay.server.pipeline import MessagePipeline
from relay.server.sessions import SessionRegistry


def _redis_slice(items: List[Any], start: int, end: int) -> List[Any]:
    """Apply Redis LRANGE/LTRIM index semantics (inclusive, negative from end)."""
    n = len(items)
    if start < 0:
        start = max(n + start, 0)
    if end < 0:
        end = n + end
    return items[start:end + 1]


class FakePipeline:
    """Queues list commands and applies them on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._commands = []

    def rpush(self, key, *values):
        self._commands.append(("rpush", key, values))
        return self

    def ltrim(self, key, start, end):
        self._commands.append(("ltrim", key, (start, end)))
        return self

    def execute(self):
        results = []
        for name, key, args in self._commands:
            if name == "rpush":
                results.append(self._redis.rpush(key, *args))
            else:
                results.append(self._redis.ltrim(key, *args))
        self._commands = []
        return results


class FakePubSub:
    """Minimal redis-py PubSub: messages and listen() errors are fed by the test."""

    def __init__(self):
        self.channels: List[str] = []
        self.pending = deque()
        self.errors = deque()
        self.closed = False
        self.on_drained = None

    def subscribe(self, *channels):
        self.channels.extend(channels)

    def listen(self):
        if self.errors:
            raise self.errors.popleft()
        while self.pending:
            yield self.pending.popleft()
        if self.on_drained:
            self.on_drained()

    def close(self):
        self.closed = True


class FakeRedis:
    """Minimal redis.Redis for deterministic unit tests."""

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.published: List[tuple] = []
        self.pubsub_instance = FakePubSub()
        self.subscriber_count = 1

    def ping(self):
        return True

    def close(self):
        pass

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def rpush(self, key, *values):
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    def ltrim(self, key, start, end):
        self.lists[key] = _redis_slice(self.lists.get(key, []), start, end)
        return True

    def lrange(self, key, start, end):
        return _redis_slice(self.lists.get(key, []), start, end)

    def publish(self, channel, data):
        self.published.append((channel, data))
        return self.subscriber_count

    def pubsub(self, ignore_subscribe_messages=False):
        return self.pubsub_instance


class RecordingDeliver:
    """Stands in for socketio.emit; can be told to fail for some connections."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.failing = set()

    def __call__(self, connection, event, payload):
        if connection in self.failing:
            raise ConnectionError(f"connection {connection} closed")
        self.calls.append((connection, event, payload))

    def for_connection(self, connection):
        return [payload for conn, _, payload in self.calls if conn == connection]


class Clock:
    """Deterministic millisecond clock advancing by ``step`` per call."""

    def __init__(self, start=1_700_000_000_000, step=1):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def relay_settings():
    return Settings.from_env({
        "SOCKETIO_ASYNC_MODE": "threading",
        "METRICS_ENABLED": "false",
    })


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def deliver():
    return RecordingDeliver()


@pytest.fixture
def fanout(registry, store, deliver):
    return RoomFanOut(registry, store, deliver)


@pytest.fixture
def pipeline(registry, fanout, store):
    return MessagePipeline(registry, fanout, store, clock=Clock())


@pytest.fixture
def app(relay_settings, store):
    """Create the relay application on an in-memory store."""
    from relay.server.app import create_app

    test_app = create_app(relay_settings, message_store=store)
    test_app.config['TESTING'] = True
    return test_app


@pytest.fixture
def client(app):
    """Create HTTP test client."""
    return app.test_client()


@pytest.fixture
def socket_client(app):
    """Factory for connected Socket.IO test clients."""
    socketio = app.extensions['socketio']
    clients = []

    def connect():
        sio_client = socketio.test_client(app)
        clients.append(sio_client)
        return sio_client

    yield connect

    for sio_client in clients:
        if sio_client.is_connected():
            sio_client.disconnect()
