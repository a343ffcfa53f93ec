"""
Database package for LawnBoss Admin.
Provides SQLAlchemy models, connection management, and session handling.
"""

from database.connection import (
    Base,
    get_engine,
    get_session_factory,
    get_db_session,
    init_db,
    check_db_connection,
    configure_database,
    is_db_configured
)

from database.models import (
    UserProfile,
    Customer,
    Property,
    ServiceType,
    TaxConfiguration,
    Technician,
    Crew,
    CrewMember,
    CrewAssignment,
    ServiceSchedule,
    ServiceScheduleInstance,
    Estimate,
    EstimateItem,
    Invoice,
    InvoiceItem,
    MessageProvider,
    Message,
    MessageRecipient,
    MessageLog,
    EventLog
)

__all__ = [
    # Connection
    'Base',
    'get_engine',
    'get_session_factory',
    'get_db_session',
    'init_db',
    'check_db_connection',
    'configure_database',
    'is_db_configured',
    # Models
    'UserProfile',
    'Customer',
    'Property',
    'ServiceType',
    'TaxConfiguration',
    'Technician',
    'Crew',
    'CrewMember',
    'CrewAssignment',
    'ServiceSchedule',
    'ServiceScheduleInstance',
    'Estimate',
    'EstimateItem',
    'Invoice',
    'InvoiceItem',
    'MessageProvider',
    'Message',
    'MessageRecipient',
    'MessageLog',
    'EventLog'
]
