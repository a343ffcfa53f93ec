"""
Health Check & Monitoring Endpoints
Liveness, readiness and process metrics for the deployment platform
"""
import os
import sys
import time
import psutil
from datetime import datetime
from typing import Dict, Any
from flask import Blueprint, jsonify, current_app
import logging

logger = logging.getLogger(__name__)

SERVICE_NAME = 'lawnboss-admin'
SERVICE_VERSION = '1.0.0'

# Create Blueprint for health check routes
health_bp = Blueprint('health', __name__)

# Track application start time
START_TIME = time.time()


def get_system_metrics() -> Dict[str, Any]:
    """
    Get basic process metrics

    Returns:
        Dictionary of process metrics (empty when psutil cannot read them)
    """
    try:
        process = psutil.Process()

        return {
            'cpu_percent': process.cpu_percent(interval=0.1),
            'memory_mb': round(process.memory_info().rss / 1024 / 1024, 2),
            'memory_percent': round(process.memory_percent(), 2),
            'threads': process.num_threads(),
        }
    except psutil.Error as e:
        logger.warning(f"Failed to get system metrics: {e}")
        return {}


def get_uptime() -> Dict[str, Any]:
    uptime_seconds = time.time() - START_TIME

    return {
        'uptime_seconds': round(uptime_seconds, 2),
        'uptime_hours': round(uptime_seconds / 3600, 2),
        'started_at': datetime.fromtimestamp(START_TIME).isoformat()
    }


def check_database() -> Dict[str, Any]:
    """Run SELECT 1 against the configured database."""
    from database.connection import check_db_connection, is_db_configured

    if not is_db_configured():
        return {'configured': False, 'healthy': False}
    try:
        check_db_connection()
        return {'configured': True, 'healthy': True}
    except RuntimeError as e:
        return {'configured': True, 'healthy': False, 'error': str(e)}


def check_filesystem() -> Dict[str, Any]:
    """The log directory must be writable outside of tests."""
    if current_app.config.get('TESTING'):
        return {'logs': {'exists': True, 'writable': True, 'healthy': True}}

    dir_path = os.path.join(os.getcwd(), 'logs')
    exists = os.path.exists(dir_path)
    writable = os.access(dir_path, os.W_OK) if exists else False
    return {'logs': {'exists': exists, 'writable': writable, 'healthy': exists and writable}}


def check_providers() -> Dict[str, bool]:
    """Whether an email and an SMS provider are available."""
    from database.connection import get_db_session
    from database.models import MessageProvider

    with get_db_session() as db:
        active = {p.type for p in db.query(MessageProvider).filter(MessageProvider.is_active == True).all()}
    return {
        'email': 'email' in active or bool(current_app.config.get('SMTP_HOST')),
        'sms': 'sms' in active
    }


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Liveness: 200 whenever the process serves requests."""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.utcnow().isoformat(),
        'service': SERVICE_NAME
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """
    Readiness probe endpoint
    Returns 200 once the database answers and the log directory is writable
    """
    database = check_database()
    filesystem = check_filesystem()
    filesystem_healthy = all(status['healthy'] for status in filesystem.values())
    is_ready = database['healthy'] and filesystem_healthy

    return jsonify({
        'status': 'ready' if is_ready else 'not_ready',
        'timestamp': datetime.utcnow().isoformat(),
        'checks': {
            'database': database,
            'filesystem': filesystem,
            'filesystem_healthy': filesystem_healthy
        }
    }), 200 if is_ready else 503


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """Process metrics, background jobs and realtime channels."""
    from services.realtime import get_subscription_manager
    from services.scheduler import get_scheduler

    scheduler = get_scheduler()
    database = check_database()

    return jsonify({
        'timestamp': datetime.utcnow().isoformat(),
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'environment': os.environ.get('FLASK_ENV', 'production'),
        'uptime': get_uptime(),
        'system': get_system_metrics(),
        'database': database,
        'providers': check_providers() if database['healthy'] else {},
        'scheduler': {
            'running': scheduler.running,
            'jobs': scheduler.get_job_status()
        },
        'realtime': get_subscription_manager().get_status(),
        'python_version': sys.version.split()[0]
    }), 200


@health_bp.route('/ping', methods=['GET'])
def ping():
    return 'pong', 200


def register_health_checks(app):
    """
    Register health check blueprint with Flask app

    Args:
        app: Flask application instance
    """
    app.register_blueprint(health_bp, url_prefix='/api')
    logger.info("Health check endpoints registered: /api/health, /api/ready, /api/metrics, /api/ping")
