"""
Database seeding for LawnBoss Admin.
Creates the default tax rate, the standard service catalog and an admin account.
"""

import logging
import os
from werkzeug.security import generate_password_hash
from database.connection import get_db_session
from database.models import UserProfile, ServiceType, TaxConfiguration

logger = logging.getLogger(__name__)

DEFAULT_TAX_NAME = "Default Sales Tax"
DEFAULT_TAX_RATE = 0.07
DEFAULT_ADMIN_EMAIL = "admin@lawnboss.com"
DEFAULT_ADMIN_PASSWORD = os.environ.get('DEFAULT_ADMIN_PASSWORD', 'admin123')

# (label, description, base_price, unit_type)
DEFAULT_SERVICE_TYPES = [
    ('Basic Lawn Maintenance', 'Mowing, edging, and cleanup', 65.00, 'flat_rate'),
    ('Full Service Package', 'Mowing, edging, cleanup, fertilization, and weed control', 120.00, 'flat_rate'),
    ('Mulch Installation', 'Premium mulch installation service', 55.00, 'per_yard'),
    ('Pine Straw Installation', 'Pine straw installation by the bale', 12.00, 'per_yard'),
    ('Weed Control', 'Targeted weed control application', 75.00, 'flat_rate'),
    ('Fertilization', 'Professional lawn fertilization service', 85.00, 'flat_rate'),
    ('Pressure Washing', 'High-pressure cleaning of surfaces', 95.00, 'flat_rate'),
    ('Bush Trimming', 'Professional shrub and bush trimming', 45.00, 'flat_rate'),
    ('Leaf Removal', 'Complete leaf cleanup and removal', 85.00, 'flat_rate'),
]


def seed_default_tax_configuration(session):
    """Create the default tax configuration if none exists."""
    config = session.query(TaxConfiguration).filter_by(is_default=True).first()
    if config:
        logger.info(f"Default tax configuration already exists: {config.name}")
        return config

    config = TaxConfiguration(
        name=DEFAULT_TAX_NAME,
        rate=DEFAULT_TAX_RATE,
        is_default=True,
        applies_to=['services', 'materials']
    )
    session.add(config)
    session.flush()
    logger.info(f"Created default tax configuration: {config.name} ({DEFAULT_TAX_RATE:.0%})")
    return config


def seed_service_types(session):
    """Insert missing catalog entries, keyed by label."""
    existing = {st.label for st in session.query(ServiceType.label).all()}
    created = 0
    for label, description, base_price, unit_type in DEFAULT_SERVICE_TYPES:
        if label in existing:
            continue
        session.add(ServiceType(
            name=label,
            label=label,
            description=description,
            base_price=base_price,
            unit_type=unit_type,
            tax_rate=0
        ))
        created += 1
    session.flush()
    logger.info(f"Seeded {created} service types")
    return created


def seed_default_admin(session):
    """Create default admin profile if none exists."""
    admin = session.query(UserProfile).filter_by(role='admin').first()
    if admin:
        logger.info(f"Admin user already exists: {admin.email}")
        return admin

    admin = UserProfile(
        email=DEFAULT_ADMIN_EMAIL,
        full_name="Administrator",
        password_hash=generate_password_hash(DEFAULT_ADMIN_PASSWORD, method='pbkdf2:sha256'),
        role='admin',
        is_active=True
    )
    session.add(admin)
    session.flush()
    logger.info(f"Created default admin user: {admin.email}")
    return admin


def seed_all(session):
    seed_default_tax_configuration(session)
    seed_service_types(session)
    seed_default_admin(session)


def seed_database():
    """
    Seed the database with default data if empty.
    Call this at application startup.
    """
    try:
        with get_db_session() as session:
            seed_all(session)
        logger.info("Database seeding completed successfully")
        return True
    except Exception as e:
        logger.error(f"Database seeding failed: {e}")
        raise


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    seed_database()
