"""
Pytest configuration and shared fixtures
"""
import os
import sys
import pytest
from datetime import date, timedelta
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ.setdefault('FLASK_ENV', 'testing')
os.environ.setdefault('SECRET_KEY', 'a8f5f167f44f4964e6c998dee827110c-lawnboss-suite')


@pytest.fixture
def app_config():
    """Fixture providing test configuration"""
    from config import TestingConfig
    return TestingConfig


@pytest.fixture
def settings():
    """Settings mapping used by services outside a Flask app"""
    from config import TestingConfig
    return {key: getattr(TestingConfig, key) for key in dir(TestingConfig) if key.isupper()}


@pytest.fixture(autouse=True)
def reset_realtime():
    """Every test starts without live channels"""
    from services.realtime import get_subscription_manager
    get_subscription_manager().clear()
    yield
    get_subscription_manager().clear()


@pytest.fixture
def database():
    """Fresh in-memory schema with the default tax rate, service catalog and admin"""
    from database.connection import configure_database, drop_db, init_db, get_db_session
    from database.seed import seed_all

    configure_database('sqlite://')
    drop_db()
    init_db()
    with get_db_session() as session:
        seed_all(session)
    yield
    drop_db()


@pytest.fixture
def db_session(database):
    """Session on the test database; rolled back after the test"""
    from database.connection import get_session_factory

    session = get_session_factory()()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def app(database):
    """Flask application on the test database"""
    from app_init import create_app
    return create_app('testing')


@pytest.fixture
def client(app):
    """Unauthenticated test client"""
    return app.test_client()


@pytest.fixture
def auth_client(client):
    """Test client logged in as the seeded administrator"""
    from database.seed import DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD

    response = client.post('/api/auth/login', json={
        'email': DEFAULT_ADMIN_EMAIL,
        'password': DEFAULT_ADMIN_PASSWORD
    })
    assert response.status_code == 200
    return client


@pytest.fixture
def customer_payload():
    """Valid add-customer form"""
    return {
        'first_name': 'Jane',
        'last_name': 'Doe',
        'email': 'jane.doe@example.com',
        'phone': '(555) 123-4567',
        'billing_address': '12 Elm Street',
        'billing_city': 'Austin',
        'billing_state': 'TX',
        'billing_zip': '78701',
    }


@pytest.fixture
def technician_payload():
    return {
        'first_name': 'Tom',
        'last_name': 'Green',
        'email': 'tom.green@example.com',
        'phone': '555-987-6543',
    }


# ============================================================================
# FACTORIES
# ============================================================================

def make_customer(session, **overrides):
    """Create a customer (and its billing-address property); returns the customer dict"""
    from services.customer_repository import CustomerRepository

    data = {
        'first_name': 'Jane',
        'last_name': 'Doe',
        'email': 'jane.doe@example.com',
        'phone': '5551234567',
        'billing_address': '12 Elm Street',
        'billing_city': 'Austin',
        'billing_state': 'TX',
        'billing_zip': '78701',
    }
    data.update(overrides)
    return CustomerRepository(session).create_customer(data)


def make_technician(session, **overrides):
    from services.crew_repository import CrewRepository

    data = {
        'first_name': 'Tom',
        'last_name': 'Green',
        'email': 'tom.green@example.com',
        'phone': '5559876543',
    }
    data.update(overrides)
    return CrewRepository(session).create_technician(data)


def service_type_id(session, label='Basic Lawn Maintenance'):
    from database.models import ServiceType
    return session.query(ServiceType).filter(ServiceType.label == label).one().id


def make_schedule(session, property_id, settings=None, **overrides):
    """One-off catalog service next week"""
    from services.schedule_repository import ScheduleRepository

    data = {
        'property_id': property_id,
        'service_type_id': service_type_id(session),
        'scheduled_date': (date.today() + timedelta(days=7)).isoformat(),
    }
    data.update(overrides)
    return ScheduleRepository(session, settings=settings).create_schedule(data)


def make_completed_schedule(session, property_id, settings=None, **overrides):
    from services.schedule_repository import ScheduleRepository

    schedule = make_schedule(session, property_id, settings, **overrides)
    return ScheduleRepository(session, settings=settings).update_status(schedule['id'], 'completed')


@pytest.fixture
def customer(db_session):
    return make_customer(db_session)


@pytest.fixture
def property_id(customer):
    return customer['properties'][0]['id']
