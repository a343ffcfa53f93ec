"""
Centralized Configuration for LawnBoss Admin
Manages environment-specific settings, secrets, and service configurations.
"""
import os
from datetime import timedelta


class Config:
    """Base configuration with defaults"""

    # Flask Settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(32).hex()
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max request body
    JSON_SORT_KEYS = False

    # CORS Settings
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    CORS_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']
    CORS_ALLOW_HEADERS = ['Content-Type', 'Authorization', 'X-Requested-With']

    # Database Settings
    DATABASE_URL = os.environ.get('DATABASE_URL', 'postgresql://localhost/lawnboss')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Business Defaults
    COMPANY_NAME = os.environ.get('COMPANY_NAME', 'LawnBoss')
    COMPANY_PHONE = os.environ.get('COMPANY_PHONE', '')
    COMPANY_EMAIL = os.environ.get('COMPANY_EMAIL', '')
    PUBLIC_SITE_URL = os.environ.get('PUBLIC_SITE_URL', 'http://localhost:5173')
    DEFAULT_PAYMENT_TERMS = int(os.environ.get('DEFAULT_PAYMENT_TERMS', '30'))  # days
    DEFAULT_TAX_RATE = float(os.environ.get('DEFAULT_TAX_RATE', '0.07'))
    ESTIMATE_VALID_DAYS = int(os.environ.get('ESTIMATE_VALID_DAYS', '30'))

    # Outbound Email (SMTP fallback when no email provider row is active)
    SMTP_HOST = os.environ.get('SMTP_HOST', '')
    SMTP_PORT = int(os.environ.get('SMTP_PORT', '587'))
    SMTP_USER = os.environ.get('SMTP_USER', '')
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD', '')
    FROM_EMAIL = os.environ.get('FROM_EMAIL', 'noreply@lawnboss.com')
    FROM_NAME = os.environ.get('FROM_NAME', 'LawnBoss')

    # Provider HTTP settings
    SENDGRID_API_URL = 'https://api.sendgrid.com/v3/mail/send'
    TWILIO_API_URL = 'https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json'
    PROVIDER_TIMEOUT = int(os.environ.get('PROVIDER_TIMEOUT', '30'))  # seconds

    # Realtime change feed
    REALTIME_DEBOUNCE_SECONDS = float(os.environ.get('REALTIME_DEBOUNCE_SECONDS', '0.1'))
    REALTIME_KEEPALIVE_SECONDS = int(os.environ.get('REALTIME_KEEPALIVE_SECONDS', '15'))

    # Background Jobs
    SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() == 'true'
    RECURRING_SERVICES_INTERVAL = int(os.environ.get('RECURRING_SERVICES_INTERVAL', '3600'))
    OVERDUE_INVOICES_INTERVAL = int(os.environ.get('OVERDUE_INVOICES_INTERVAL', '3600'))
    SCHEDULE_HORIZON_DAYS = int(os.environ.get('SCHEDULE_HORIZON_DAYS', '14'))

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    LOG_FILE = os.environ.get('LOG_FILE', 'app.log')

    # Session Configuration
    SESSION_PERMANENT = False
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)


class DevelopmentConfig(Config):
    """Development-specific configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = 'DEBUG'
    # Allow all CORS in development
    CORS_ORIGINS = ['*']


class ProductionConfig(Config):
    """Production-specific configuration"""
    DEBUG = False
    TESTING = False
    # Strict CORS in production
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'https://admin.lawnboss.com').split(',')
    # Force HTTPS
    PREFERRED_URL_SCHEME = 'https'
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class TestingConfig(Config):
    """Testing-specific configuration"""
    DEBUG = True
    TESTING = True
    DATABASE_URL = 'sqlite://'
    # No background threads in tests
    SCHEDULER_ENABLED = False
    REALTIME_DEBOUNCE_SECONDS = 0.01


# Configuration selector
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}


def get_config():
    """Get configuration based on FLASK_ENV environment variable"""
    env = os.environ.get('FLASK_ENV', 'development')
    return config_by_name.get(env, DevelopmentConfig)


def get_settings():
    """Upper-case settings of the active configuration as a dict (same keys as app.config)."""
    config_class = get_config()
    return {key: getattr(config_class, key) for key in dir(config_class) if key.isupper()}
