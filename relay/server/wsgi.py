"""WSGI entry point for the relay server.

This module MUST be the entry point for gunicorn to ensure eventlet
monkey patching happens before any other imports.
"""

# CRITICAL: Monkey-patch FIRST, before ANY other imports
import eventlet
eventlet.monkey_patch()

# Now safe to import the app
from relay.server.app import create_app  # noqa: E402

# Create the app instance for gunicorn
app = create_app()
