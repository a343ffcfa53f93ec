"""
Application Initialization Module
Properly initializes Flask app with all infrastructure components
"""
import os
import logging

from flask import Flask

from config import config_by_name, get_config
from logging_config import setup_logging
from security import setup_security
from health_checks import register_health_checks
from database.connection import configure_database, init_db
from database.seed import seed_database
from services.realtime import install_change_feed
from services.scheduler import init_scheduler

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """
    Application factory that creates and configures Flask app with all infrastructure

    Args:
        config_name: 'development', 'production' or 'testing'. Defaults to FLASK_ENV.

    Returns:
        Configured Flask application instance
    """
    from app import register_blueprints

    app = Flask(__name__)

    # Load configuration
    config_class = config_by_name.get(config_name) if config_name else get_config()
    app.config.from_object(config_class or get_config())

    setup_logging(app)

    logger.info("=" * 60)
    logger.info("Initializing LawnBoss Admin API")
    logger.info("=" * 60)
    logger.info(f"Environment: {config_name or os.environ.get('FLASK_ENV', 'development')}")
    logger.info(f"Debug mode: {app.debug}")

    # Setup security (CORS, headers, error handlers)
    setup_security(app, app.config)

    initialize_database(app)

    # Publish committed row changes to live listeners
    install_change_feed()

    register_blueprints(app)
    register_health_checks(app)

    if app.config.get('SCHEDULER_ENABLED'):
        init_scheduler(app.config)
    else:
        logger.info("Background scheduler disabled")

    logger.info("Application initialization complete")
    logger.info("=" * 60)

    return app


def initialize_database(app):
    """
    Point the database layer at DATABASE_URL, create missing tables and seed defaults.

    Args:
        app: Flask application instance
    """
    configure_database(app.config['DATABASE_URL'])
    init_db()
    seed_database()
    logger.info("Database initialized")
