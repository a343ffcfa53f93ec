"""
Security Utilities & Middleware
CORS, response headers, request logging and the JSON error boundary.
"""
import os
import secrets
from typing import Dict, Any
from flask import Flask, request, jsonify, Response
from flask_cors import CORS
import logging

from services.errors import ServiceError
from validators import ValidationError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = 'Something went wrong. Please reload the page and try again.'
QUIET_PATHS = ('/api/health', '/api/ping')


class SecurityConfig:
    """Secret key validation"""

    WEAK_KEYS = ('dev', 'test', 'secret', 'password', '12345')

    @staticmethod
    def generate_secret_key() -> str:
        return secrets.token_hex(32)

    @staticmethod
    def validate_secret_key(secret_key: str) -> bool:
        """
        Validate that secret key is sufficiently secure

        Args:
            secret_key: Secret key to validate

        Returns:
            True if key is secure, False otherwise
        """
        if not secret_key:
            return False

        if len(secret_key) < 32:
            logger.warning("Secret key is too short (minimum 32 characters)")
            return False

        if any(weak in secret_key.lower() for weak in SecurityConfig.WEAK_KEYS):
            logger.warning("Secret key appears to be weak or default")
            return False

        return True

    @staticmethod
    def ensure_secret_key(config: Dict[str, Any]) -> str:
        """Return the configured key, or a generated one when it is missing or weak."""
        secret_key = config.get('SECRET_KEY')

        if not secret_key or not SecurityConfig.validate_secret_key(secret_key):
            if os.environ.get('FLASK_ENV') == 'production':
                logger.error("No secure SECRET_KEY in production! Sessions will not survive a restart.")
            secret_key = SecurityConfig.generate_secret_key()
            logger.warning(f"Generated new secret key (length: {len(secret_key)})")

        return secret_key


def setup_security_headers(app: Flask):
    @app.after_request
    def add_security_headers(response: Response) -> Response:
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Permissions-Policy'] = 'geolocation=(), microphone=(), camera=()'
        # JSON / PDF / event-stream API only
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"

        if not app.debug:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response

    logger.info("Security headers configured")


def setup_cors(app: Flask, config: Dict[str, Any]):
    """
    Configure CORS for the dashboard front end

    Args:
        app: Flask application instance
        config: Application configuration dictionary
    """
    cors_origins = config.get('CORS_ORIGINS', ['*'])
    cors_methods = config.get('CORS_METHODS', ['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'])
    cors_headers = config.get('CORS_ALLOW_HEADERS', ['Content-Type', 'Authorization'])

    if not app.debug and '*' in cors_origins:
        logger.warning("Using wildcard CORS in production! Set CORS_ORIGINS environment variable.")

    CORS(
        app,
        origins=cors_origins,
        methods=cors_methods,
        allow_headers=cors_headers,
        supports_credentials=True,
        max_age=3600
    )

    logger.info(f"CORS configured: origins={cors_origins}")


def error_body(message: str, **extra) -> Dict[str, Any]:
    body = {'success': False, 'error': message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def setup_error_handlers(app: Flask):
    """
    Register JSON error handlers. Unhandled exceptions end at the 500 handler,
    which logs the traceback and answers with a generic message.
    """
    include_details = app.debug

    @app.errorhandler(ValidationError)
    def validation_error(error: ValidationError):
        return jsonify(error_body(error.message, field=error.field, errors=error.errors or None)), 400

    @app.errorhandler(ServiceError)
    def service_error(error: ServiceError):
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error.message}")
        return jsonify(error_body(error.message)), error.status_code

    simple_errors = {
        400: 'The request could not be understood or was missing required parameters',
        401: 'Authentication required',
        403: 'You do not have permission to access this resource',
        404: 'The requested resource was not found',
        405: 'The method is not allowed for the requested URL',
        413: 'The request is too large',
        429: 'Too many requests. Please try again later',
        503: 'The service is temporarily unavailable. Please try again later',
    }

    def register(code, message):
        @app.errorhandler(code)
        def handler(error):
            return jsonify(error_body(message)), code

    for code, message in simple_errors.items():
        register(code, message)

    @app.errorhandler(500)
    def internal_server_error(error):
        original = getattr(error, 'original_exception', None) or error
        logger.error(f"Internal server error: {original}", exc_info=original)
        details = {'details': str(original), 'type': type(original).__name__} if include_details else {}
        return jsonify(error_body(GENERIC_ERROR_MESSAGE, **details)), 500

    logger.info("Error handlers registered")


def setup_request_logging(app: Flask):
    @app.before_request
    def log_request():
        if request.path in QUIET_PATHS:
            return

        logger.info(
            f"Request: {request.method} {request.path} "
            f"from {request.remote_addr} "
            f"User-Agent: {request.user_agent.string[:100]}"
        )

    @app.after_request
    def log_response(response: Response) -> Response:
        if request.path in QUIET_PATHS:
            return response

        logger.info(
            f"Response: {request.method} {request.path} "
            f"status={response.status_code} "
            f"size={response.content_length}"
        )
        return response

    logger.info("Request logging configured")


def validate_environment_variables(required_vars: list, app: Flask) -> bool:
    missing_vars = [var for var in required_vars if not os.environ.get(var)]
    for var in missing_vars:
        logger.warning(f"Missing environment variable: {var}")

    if missing_vars and not app.debug:
        logger.error(f"Missing required environment variables in production: {missing_vars}")

    return not missing_vars


def setup_security(app: Flask, config: Dict[str, Any]):
    """
    Setup all security features for the application

    Args:
        app: Flask application instance
        config: Application configuration dictionary
    """
    logger.info("Configuring application security...")

    app.secret_key = SecurityConfig.ensure_secret_key(config)
    setup_cors(app, config)
    setup_security_headers(app)
    setup_error_handlers(app)
    setup_request_logging(app)

    if not app.debug:
        validate_environment_variables(['SECRET_KEY', 'DATABASE_URL'], app)

    logger.info("Security configuration complete")
