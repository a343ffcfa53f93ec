"""
Event Logger Service - Audit trail of changes to business records.

Repositories and background jobs record what happened to customers,
schedules, estimates, invoices and messages so the activity feed and the
per-record history can show who changed what and when.
"""

import logging
from typing import Dict, Optional, List, Any
from datetime import datetime, timedelta

from sqlalchemy import func

from database.models import EventLog

logger = logging.getLogger(__name__)

# Event types for different operations
EVENT_TYPES = {
    # CRUD Operations
    'CREATED': 'Entity was created',
    'UPDATED': 'Entity was updated',
    'DELETED': 'Entity was deleted',

    # Status changes
    'STATUS_CHANGED': 'Status was changed',
    'ASSIGNED': 'Crew was assigned',

    # Billing
    'PAYMENT_RECEIVED': 'Payment was received',
    'INVOICE_GENERATED': 'Invoice was generated',
    'INVOICE_OVERDUE': 'Invoice became overdue',
    'ESTIMATE_EXPIRED': 'Estimate expired',

    # Scheduling
    'SERVICE_SCHEDULED': 'Service visit was scheduled',

    # Communication
    'MESSAGE_SENT': 'Message was sent',

    # Users
    'USER_LOGIN': 'User logged in',
    'USER_LOGOUT': 'User logged out',
}

ENTITY_TYPES = [
    'customer', 'property', 'technician', 'crew', 'crew_member', 'crew_assignment',
    'service_type', 'service_schedule', 'schedule_instance', 'tax_configuration',
    'estimate', 'invoice', 'message', 'user'
]


class EventLogger:
    """Service for logging system events to the database."""

    def __init__(self, session, actor_type: str = 'system', actor_id: str = None):
        """
        Args:
            session: SQLAlchemy database session
            actor_type: 'user' or 'system'
            actor_id: ID of the acting user profile, None for the system
        """
        self.session = session
        self.actor_type = actor_type
        self.actor_id = actor_id

    def log(self, entity_type: str, entity_id: str, event_type: str,
            description: str = None, metadata: Dict = None) -> Optional[Dict]:
        """
        Add an event row to the current transaction.

        Returns:
            The event as a dict, or None when it could not be written
        """
        try:
            event = EventLog(
                timestamp=datetime.utcnow(),
                actor_type=self.actor_type,
                actor_id=self.actor_id,
                entity_type=entity_type,
                entity_id=entity_id,
                event_type=event_type,
                description=description or EVENT_TYPES.get(event_type, event_type),
                extra_data=metadata or {}
            )
            self.session.add(event)
            self.session.flush()

            logger.debug(f"Event logged: {event_type} on {entity_type}:{entity_id}")
            return event.to_dict()

        except Exception as e:
            logger.error(f"Failed to log event: {e}")
            return None

    def log_create(self, entity_type: str, entity_id: str, description: str = None,
                   entity_data: Dict = None) -> Optional[Dict]:
        return self.log(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type='CREATED',
            description=description or f"New {entity_type.replace('_', ' ')} created",
            metadata=entity_data
        )

    def log_update(self, entity_type: str, entity_id: str, changes: Dict,
                   description: str = None) -> Optional[Dict]:
        """Log an update; nothing is written when there are no changes."""
        if not changes:
            return None
        return self.log(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type='UPDATED',
            description=description or f"{entity_type.replace('_', ' ').capitalize()} was updated",
            metadata={'changes': changes}
        )

    def log_delete(self, entity_type: str, entity_id: str, description: str = None,
                   entity_data: Dict = None) -> Optional[Dict]:
        return self.log(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type='DELETED',
            description=description or f"{entity_type.replace('_', ' ').capitalize()} was deleted",
            metadata={'deleted_data': entity_data} if entity_data else None
        )

    def log_status_change(self, entity_type: str, entity_id: str,
                          old_status: str, new_status: str) -> Optional[Dict]:
        return self.log(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type='STATUS_CHANGED',
            description=f"{entity_type.replace('_', ' ').capitalize()} status changed "
                        f"from '{old_status}' to '{new_status}'",
            metadata={'old_status': old_status, 'new_status': new_status}
        )

    def get_entity_history(self, entity_type: str, entity_id: str,
                           limit: int = 50) -> List[Dict]:
        """Get the event history for a specific entity, newest first."""
        events = self.session.query(EventLog).filter(
            EventLog.entity_type == entity_type,
            EventLog.entity_id == entity_id
        ).order_by(EventLog.timestamp.desc()).limit(limit).all()

        return [e.to_dict() for e in events]

    def get_recent_events(self, hours: int = 24, event_types: List[str] = None,
                          entity_types: List[str] = None, limit: int = 100) -> List[Dict]:
        """Get recent events with optional filtering."""
        since = datetime.utcnow() - timedelta(hours=hours)

        query = self.session.query(EventLog).filter(EventLog.timestamp >= since)
        if event_types:
            query = query.filter(EventLog.event_type.in_(event_types))
        if entity_types:
            query = query.filter(EventLog.entity_type.in_(entity_types))

        events = query.order_by(EventLog.timestamp.desc()).limit(limit).all()
        return [e.to_dict() for e in events]

    def get_activity_summary(self, days: int = 7) -> Dict[str, Any]:
        """Event counts by type and by entity over the last `days` days."""
        since = datetime.utcnow() - timedelta(days=days)

        event_counts = self.session.query(
            EventLog.event_type,
            func.count(EventLog.id).label('count')
        ).filter(EventLog.timestamp >= since).group_by(EventLog.event_type).all()

        entity_counts = self.session.query(
            EventLog.entity_type,
            func.count(EventLog.id).label('count')
        ).filter(EventLog.timestamp >= since).group_by(EventLog.entity_type).all()

        return {
            'period_days': days,
            'event_type_counts': {e[0]: e[1] for e in event_counts},
            'entity_type_counts': {e[0]: e[1] for e in entity_counts},
            'total_events': sum(e[1] for e in event_counts),
            'recent_events': self.get_recent_events(hours=24, limit=10)
        }


def get_event_logger(session, user_id: str = None) -> EventLogger:
    """
    Factory function to create an EventLogger instance.

    Args:
        session: SQLAlchemy database session
        user_id: Optional user ID if the actor is a user
    """
    actor_type = 'user' if user_id else 'system'
    return EventLogger(session, actor_type, user_id)
