"""Prometheus counters for the relay core."""

from prometheus_client import Counter

MESSAGES_PERSISTED = Counter(
    "relay_messages_persisted_total",
    "Envelopes appended to a room and published",
)
FANOUT_DELIVERIES = Counter(
    "relay_fanout_deliveries_total",
    "Envelopes delivered to a local session",
)
FANOUT_FAILURES = Counter(
    "relay_fanout_failures_total",
    "Deliveries to a local session that raised",
)
