"""Relay server application - room chat over Socket.IO.

This module provides the Flask-SocketIO application for the chat relay.
Messages flow through a shared message store so several relay processes can
serve the same rooms:

    Client → Socket.IO → Message Pipeline → Redis (append + publish)
    Redis pub/sub → Room Fan-Out (every process) → Socket.IO → Clients

Without REDIS_HOST the server runs as a single instance on an in-memory store.

NOTE: Eventlet monkey patching is done in wsgi.py entry point
"""

import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from prometheus_flask_exporter import PrometheusMetrics

from common.message_store import InMemoryMessageStore
from common.redis_client import RedisConfig, RedisMessageStore
from common.utils.config import settings as default_settings
from relay.server.fanout import RoomFanOut
from relay.server.pipeline import MessagePipeline
from relay.server.sessions import SessionRegistry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def build_message_store(settings, socketio):
    """Pick the message store for this process from settings."""
    if not settings.redis_host:
        logger.info("message_store_selected backend=memory")
        return InMemoryMessageStore(retention=settings.room_retention)

    config = RedisConfig(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
    )
    logger.info("message_store_selected backend=redis host=%s port=%s", config.host, config.port)
    return RedisMessageStore(
        config,
        retention=settings.room_retention,
        spawn=socketio.start_background_task,
    )


def create_app(settings=None, message_store=None):
    """Application factory for the relay server.

    Args:
        settings: Settings instance. Defaults to the environment settings.
        message_store: Store to use instead of the one chosen from settings.
    """
    settings = settings or default_settings
    app = Flask(__name__)

    # Configure CORS
    CORS(app, resources={
        r"/api/*": {
            "origins": settings.websocket_cors_origins,
            "methods": ["GET", "OPTIONS"],
        }
    })

    # Emits only reach this process's connections; cross-process fan-out
    # goes through the message store, so no Socket.IO message queue.
    # Events from one connection are handled in order, one at a time.
    socketio = SocketIO()
    socketio.init_app(
        app,
        cors_allowed_origins=settings.websocket_cors_origins,
        async_mode=settings.async_mode,
        message_queue=None,
        ping_interval=settings.websocket_ping_interval,
        ping_timeout=settings.websocket_ping_timeout,
        logger=settings.debug,
        engineio_logger=settings.debug,
        async_handlers=False
    )

    if settings.metrics_enabled:
        metrics = PrometheusMetrics(app)
        metrics.info("relay_server_info", "FleetSocket Relay Server", version="1.0.0")

    store = message_store or build_message_store(settings, socketio)

    def deliver(connection, event, payload):
        socketio.emit(event, payload, to=connection)

    registry = SessionRegistry()
    fanout = RoomFanOut(registry, store, deliver)
    pipeline = MessagePipeline(registry, fanout, store, history_limit=settings.history_limit)

    # Store dependencies in app.extensions
    app.extensions['socketio'] = socketio
    app.extensions['message_store'] = store
    app.extensions['session_registry'] = registry
    app.extensions['room_fanout'] = fanout
    app.extensions['chat_pipeline'] = pipeline

    if not store.ping():
        logger.warning("message_store_ping_failed - continuing, store calls will retry")

    # Register health routes
    from relay.server.routes.health_routes import init_health_routes
    app.register_blueprint(init_health_routes())

    # Register Socket.IO event handlers
    from relay.server.socket_handlers import chat_handlers, connection_handlers
    connection_handlers.register_handlers(socketio)
    chat_handlers.register_handlers(socketio)

    logger.info("relay_server_initialized")
    return app


if __name__ == '__main__':
    app = create_app()
    logger.info("=" * 60)
    logger.info("Starting FleetSocket relay on %s:%s", default_settings.host, default_settings.port)
    logger.info("=" * 60)
    app.extensions['socketio'].run(app, host=default_settings.host, port=default_settings.port)
