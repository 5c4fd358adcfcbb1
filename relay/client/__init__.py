"""Relay client: optimistic sends reconciled with server broadcasts."""

from relay.client.reconciliation import OutboundBuffer, ReconciliationLayer, is_duplicate
from relay.client.socket_client import RelayClient

__all__ = ["OutboundBuffer", "ReconciliationLayer", "RelayClient", "is_duplicate"]
