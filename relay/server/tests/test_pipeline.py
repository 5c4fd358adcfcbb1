"""Tests for the message pipeline."""

import pytest

from common.errors import UnknownSessionError
from common.message_store import InMemoryMessageStore
from relay.server.fanout import RoomFanOut
from relay.server.pipeline import MessagePipeline


def joined_session(registry, pipeline, connection, room_id, name=None):
    session_id = registry.register(connection)
    if name is not None:
        pipeline.handle_set_name(session_id, name)
    pipeline.handle_join(session_id, room_id)
    return session_id


def test_send_persists_publishes_and_returns_envelope(registry, pipeline, store, deliver):
    session_id = joined_session(registry, pipeline, "a", "General", name="Ada")

    envelope = pipeline.handle_send(session_id, "General", "  hello  ")

    assert envelope is not None
    assert envelope.content == "hello"
    assert envelope.sender == "Ada"
    assert envelope.room_id == "General"
    assert store.range_recent("General", 50) == [envelope]
    assert deliver.for_connection("a") == [{"type": "message", "payload": envelope.to_dict()}]


def test_envelope_ids_are_unique(registry, pipeline):
    session_id = joined_session(registry, pipeline, "a", "General")

    ids = {pipeline.handle_send(session_id, "General", "same").id for _ in range(20)}
    assert len(ids) == 20


@pytest.mark.parametrize("content", ["", "   ", "\n\t", None, 42])
def test_blank_send_is_dropped(registry, pipeline, store, deliver, content):
    session_id = joined_session(registry, pipeline, "a", "General")

    assert pipeline.handle_send(session_id, "General", content) is None
    assert store.range_recent("General", 50) == []
    assert deliver.calls == []


@pytest.mark.parametrize("room_id", ["", None, 7])
def test_send_without_room_is_dropped(registry, pipeline, deliver, room_id):
    session_id = joined_session(registry, pipeline, "a", "General")

    assert pipeline.handle_send(session_id, room_id, "hello") is None
    assert deliver.calls == []


def test_send_from_unknown_session_raises(pipeline):
    with pytest.raises(UnknownSessionError):
        pipeline.handle_send("missing", "General", "hello")


def test_join_returns_history_oldest_first(registry, pipeline):
    sender = joined_session(registry, pipeline, "a", "General")
    sent = [pipeline.handle_send(sender, "General", f"m{i}") for i in range(3)]

    other = registry.register("b")
    history = pipeline.handle_join(other, "General")

    assert history == sent
    assert "General" in registry.get(other).rooms


def test_join_replays_last_fifty_of_many(registry, pipeline):
    sender = joined_session(registry, pipeline, "a", "General")
    for i in range(1200):
        pipeline.handle_send(sender, "General", f"m{i}")

    history = pipeline.handle_join(registry.register("b"), "General")

    assert [e.content for e in history] == [f"m{i}" for i in range(1150, 1200)]
    assert [e.ts for e in history] == sorted(e.ts for e in history)


def test_history_never_includes_other_rooms(registry, pipeline):
    sender = joined_session(registry, pipeline, "a", "General")
    pipeline.handle_join(sender, "Ops")
    pipeline.handle_send(sender, "Ops", "ops only")
    pipeline.handle_send(sender, "General", "general")

    history = pipeline.handle_join(registry.register("b"), "General")

    assert [e.room_id for e in history] == ["General"]


def test_join_without_room_is_dropped(registry, pipeline, fanout):
    session_id = registry.register("a")

    assert pipeline.handle_join(session_id, None) is None
    assert registry.get(session_id).rooms == set()
    assert fanout.subscribed_rooms() == set()


def test_join_subscribes_room_once(registry, pipeline, fanout):
    pipeline.handle_join(registry.register("a"), "General")
    pipeline.handle_join(registry.register("b"), "General")

    assert fanout.subscribed_rooms() == {"General"}


def test_subscribers_observe_append_order(registry, pipeline, store, deliver):
    sender = joined_session(registry, pipeline, "a", "General")
    joined_session(registry, pipeline, "b", "General")

    for i in range(25):
        pipeline.handle_send(sender, "General", f"m{i}")

    persisted = [e.id for e in store.range_recent("General", 100)]
    for connection in ("a", "b"):
        observed = [p["payload"]["id"] for p in deliver.for_connection(connection)]
        assert observed == persisted


def test_set_name_is_used_for_later_sends(registry, pipeline):
    session_id = joined_session(registry, pipeline, "a", "General")

    assert pipeline.handle_set_name(session_id, "Grace") == "Grace"
    assert pipeline.handle_send(session_id, "General", "hi").sender == "Grace"


def test_session_closing_mid_send_is_not_an_error(registry, deliver):
    class ClosingStore(InMemoryMessageStore):
        """Disconnects the sender while the append is in flight."""

        def append(self, room_id, envelope):
            registry.unregister_connection("a")
            super().append(room_id, envelope)

    store = ClosingStore()
    fanout = RoomFanOut(registry, store, deliver)
    pipeline = MessagePipeline(registry, fanout, store)
    sender = joined_session(registry, pipeline, "a", "General")
    joined_session(registry, pipeline, "b", "General")

    envelope = pipeline.handle_send(sender, "General", "bye")

    assert envelope is not None
    assert [conn for conn, _, _ in deliver.calls] == ["b"]
