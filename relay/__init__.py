"""FleetSocket: a room-based chat relay."""
