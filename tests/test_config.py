"""
Tests for environment selection and the settings mapping used by services
"""
import importlib
import pytest
import config
from config import ProductionConfig, get_settings


@pytest.fixture
def reload_config(monkeypatch):
    """Re-read config.py under the given environment; restores the real one afterwards"""
    def _reload(**env):
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return importlib.reload(config)

    yield _reload
    monkeypatch.undo()
    importlib.reload(config)


@pytest.mark.unit
class TestEnvironmentSelection:

    @pytest.mark.parametrize('env,expected', [
        ('development', 'development'),
        ('production', 'production'),
        ('testing', 'testing'),
        ('staging', 'development'),
    ])
    def test_flask_env_picks_config(self, monkeypatch, env, expected):
        monkeypatch.setenv('FLASK_ENV', env)
        assert config.get_config() is config.config_by_name[expected]

    def test_development_without_flask_env(self, monkeypatch):
        monkeypatch.delenv('FLASK_ENV', raising=False)
        assert config.get_config() is config.config_by_name['development']

    def test_production_cookies(self):
        assert ProductionConfig.SESSION_COOKIE_SECURE is True
        assert ProductionConfig.PREFERRED_URL_SCHEME == 'https'
        assert ProductionConfig.DEBUG is False


@pytest.mark.unit
class TestSettingsMapping:
    """get_settings() is what repositories and jobs read outside a request"""

    def test_only_upper_case_keys(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'testing')
        settings = get_settings()
        assert settings
        assert all(key.isupper() for key in settings)
        assert 'get_settings' not in settings

    def test_testing_uses_in_memory_sqlite(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'testing')
        settings = get_settings()
        assert settings['DATABASE_URL'] == 'sqlite://'
        assert settings['TESTING'] is True
        assert settings['SCHEDULER_ENABLED'] is False
        assert settings['REALTIME_DEBOUNCE_SECONDS'] == 0.01

    def test_billing_defaults(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'testing')
        settings = get_settings()
        assert settings['DEFAULT_TAX_RATE'] == 0.07
        assert settings['DEFAULT_PAYMENT_TERMS'] == 30
        assert settings['ESTIMATE_VALID_DAYS'] == 30

    def test_provider_endpoints(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'production')
        settings = get_settings()
        assert settings['SENDGRID_API_URL'].startswith('https://api.sendgrid.com/')
        assert '{account_sid}' in settings['TWILIO_API_URL']
        assert settings['SESSION_COOKIE_SECURE'] is True


@pytest.mark.unit
class TestEnvironmentOverrides:

    def test_smtp_settings(self, reload_config):
        reloaded = reload_config(SMTP_HOST='smtp.example.com', SMTP_PORT='2525',
                                 FROM_EMAIL='office@lawnboss.example')
        assert reloaded.Config.SMTP_HOST == 'smtp.example.com'
        assert reloaded.Config.SMTP_PORT == 2525
        assert reloaded.Config.FROM_EMAIL == 'office@lawnboss.example'

    def test_scheduler_settings(self, reload_config):
        reloaded = reload_config(SCHEDULER_ENABLED='FALSE', RECURRING_SERVICES_INTERVAL='600',
                                 SCHEDULE_HORIZON_DAYS='21')
        assert reloaded.Config.SCHEDULER_ENABLED is False
        assert reloaded.Config.RECURRING_SERVICES_INTERVAL == 600
        assert reloaded.Config.SCHEDULE_HORIZON_DAYS == 21
        assert reloaded.TestingConfig.SCHEDULER_ENABLED is False

    def test_realtime_settings(self, reload_config):
        reloaded = reload_config(REALTIME_DEBOUNCE_SECONDS='0.5', REALTIME_KEEPALIVE_SECONDS='5')
        assert reloaded.Config.REALTIME_DEBOUNCE_SECONDS == 0.5
        assert reloaded.Config.REALTIME_KEEPALIVE_SECONDS == 5
        assert reloaded.TestingConfig.REALTIME_DEBOUNCE_SECONDS == 0.01

    def test_business_settings(self, reload_config):
        reloaded = reload_config(COMPANY_NAME='Green Acres', DEFAULT_TAX_RATE='0.0825',
                                 DEFAULT_PAYMENT_TERMS='15')
        settings = {k: getattr(reloaded.Config, k) for k in ('COMPANY_NAME', 'DEFAULT_TAX_RATE',
                                                             'DEFAULT_PAYMENT_TERMS')}
        assert settings == {'COMPANY_NAME': 'Green Acres', 'DEFAULT_TAX_RATE': 0.0825,
                            'DEFAULT_PAYMENT_TERMS': 15}

    def test_production_cors_origins(self, reload_config):
        reloaded = reload_config(CORS_ORIGINS='https://a.example,https://b.example')
        assert reloaded.ProductionConfig.CORS_ORIGINS == ['https://a.example', 'https://b.example']
        assert reloaded.DevelopmentConfig.CORS_ORIGINS == ['*']


@pytest.mark.integration
class TestSettingsConsumers:
    """Settings reach the Flask app and the services that read them"""

    def test_app_config_matches_testing_settings(self, app, settings):
        for key in ('DATABASE_URL', 'SCHEDULER_ENABLED', 'DEFAULT_TAX_RATE', 'REALTIME_KEEPALIVE_SECONDS'):
            assert app.config[key] == settings[key]

    def test_smtp_host_enables_email_fallback(self, db_session, settings):
        from services.messaging_service import MessagingService

        email = MessagingService(db_session, None, {**settings, 'SMTP_HOST': 'smtp.example.com'})._email_config()
        assert email['transport'] == 'smtp'
        assert email['smtp_host'] == 'smtp.example.com'
        assert email['from_email'] == settings['FROM_EMAIL']
