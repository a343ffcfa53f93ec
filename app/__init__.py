"""
LawnBoss Admin - Application Package

This package contains the modular backend structure:
- api/: HTTP route handlers (Flask Blueprints)
- utils/: Shared utility functions

The app factory and core Flask setup remain in app_init.py at the project root.
Business logic lives in the top-level services package, which uses app.utils;
blueprints are therefore imported when they are registered, not with the package.
"""

import logging

logger = logging.getLogger(__name__)


def get_blueprints():
    """All API blueprints, in registration order."""
    from app.api.auth_routes import auth_bp
    from app.api.customers import customers_bp
    from app.api.crews import crews_bp
    from app.api.schedules import schedules_bp
    from app.api.estimates import estimates_bp
    from app.api.invoices import invoices_bp
    from app.api.messages import messages_bp
    from app.api.tax import tax_bp
    from app.api.dashboard import dashboard_bp
    from app.api.live import live_bp
    from app.api.scheduler import scheduler_bp

    return [
        auth_bp,
        customers_bp,
        crews_bp,
        schedules_bp,
        estimates_bp,
        invoices_bp,
        messages_bp,
        tax_bp,
        dashboard_bp,
        live_bp,
        scheduler_bp,
    ]


def register_blueprints(app):
    """
    Register all API blueprints with the Flask app.
    Called from create_app() in app_init.py.

    Args:
        app: Flask application instance
    """
    blueprints = get_blueprints()
    for blueprint in blueprints:
        app.register_blueprint(blueprint)
    logger.info(f"Registered {len(blueprints)} blueprints")


__all__ = ['register_blueprints', 'get_blueprints']
