"""Health check routes for the relay server."""

from flask import Blueprint, jsonify, current_app

SERVICE_NAME = 'fleetsocket-relay'


def init_health_routes():
    """Initialize health check routes."""
    health_bp = Blueprint('health', __name__)

    @health_bp.route('/health', methods=['GET'])
    def liveness():
        """Liveness check - ok whenever the process serves requests."""
        return jsonify({'ok': True, 'status': 'ok'}), 200

    @health_bp.route('/api/health', methods=['GET'])
    def health_check():
        """Basic health check - always returns healthy if server is running."""
        registry = current_app.extensions.get('session_registry')
        return jsonify({
            'status': 'healthy',
            'service': SERVICE_NAME,
            'sessions': len(registry) if registry is not None else 0,
        }), 200

    @health_bp.route('/api/health/ready', methods=['GET'])
    def readiness_check():
        """Readiness check - verifies the message store connection."""
        store = current_app.extensions.get('message_store')

        store_ok = False
        if store is not None:
            try:
                store_ok = store.ping()
            except Exception:
                store_ok = False

        if store_ok:
            return jsonify({
                'status': 'ready',
                'service': SERVICE_NAME,
                'store': 'connected'
            }), 200
        return jsonify({
            'status': 'degraded',
            'service': SERVICE_NAME,
            'store': 'disconnected',
            'message': 'Server running but message store unavailable'
        }), 200  # Return 200 to stay in rotation but indicate degraded state

    return health_bp
