"""Pytest configuration and fixtures for relay client tests."""

from typing import Any, Dict, List, Tuple

import pytest

from relay.client.reconciliation import ReconciliationLayer


class FakeTransport:
    """Records emitted requests; open/closed is toggled by the test."""

    def __init__(self, open_: bool = False):
        self.open = open_
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    def is_open(self) -> bool:
        return self.open

    def emit(self, event, data):
        if not self.open:
            raise ConnectionError("transport closed")
        self.sent.append((event, data))

    def events(self):
        return [event for event, _ in self.sent]

    def sends(self):
        return [data["content"] for event, data in self.sent if event == "send"]


class ManualClock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def layer(transport, clock):
    return ReconciliationLayer(transport, room_id="General", name="Ada", clock=clock)


@pytest.fixture
def connected_layer(layer, transport):
    transport.open = True
    layer.on_ready()
    transport.sent.clear()
    return layer
