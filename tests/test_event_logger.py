"""
Tests for the audit trail
"""
import pytest
from unittest.mock import Mock
from services.event_logger import EventLogger, get_event_logger


@pytest.mark.unit
class TestEventLogger:
    """Tests for writing events"""

    def test_factory_actor(self, db_session):
        assert get_event_logger(db_session, 'user-1').actor_type == 'user'
        system = get_event_logger(db_session)
        assert system.actor_type == 'system'
        assert system.actor_id is None

    def test_log_uses_default_description(self, db_session):
        event = EventLogger(db_session).log('invoice', 'inv-1', 'PAYMENT_RECEIVED', metadata={'amount': 5})
        assert event['description'] == 'Payment was received'
        assert event['metadata'] == {'amount': 5}

    def test_log_update_skips_empty_changes(self, db_session):
        events = EventLogger(db_session)
        assert events.log_update('customer', 'c-1', {}) is None
        assert events.get_entity_history('customer', 'c-1') == []

    def test_status_change(self, db_session):
        event = EventLogger(db_session).log_status_change('service_schedule', 's-1', 'scheduled', 'completed')
        assert event['event_type'] == 'STATUS_CHANGED'
        assert event['description'] == "Service schedule status changed from 'scheduled' to 'completed'"

    def test_history_newest_first(self, db_session):
        events = EventLogger(db_session, 'user', 'user-1')
        events.log_create('crew', 'crew-1')
        events.log_delete('crew', 'crew-1')
        events.log_create('crew', 'crew-2')

        history = events.get_entity_history('crew', 'crew-1')
        assert [e['event_type'] for e in history] == ['DELETED', 'CREATED']
        assert history[0]['description'] == 'Crew was deleted'

    def test_failures_are_swallowed(self):
        session = Mock()
        session.flush.side_effect = RuntimeError('database is gone')
        assert EventLogger(session).log('crew', 'crew-1', 'CREATED') is None


@pytest.mark.unit
class TestActivity:

    def test_recent_events_filters(self, db_session):
        events = EventLogger(db_session)
        events.log_create('crew', 'crew-1')
        events.log('invoice', 'inv-1', 'INVOICE_OVERDUE')

        assert len(events.get_recent_events(event_types=['INVOICE_OVERDUE'])) == 1
        assert len(events.get_recent_events(entity_types=['crew'])) == 1

    def test_activity_summary(self, db_session):
        events = EventLogger(db_session)
        events.log_create('crew', 'crew-1')
        events.log_create('customer', 'c-1')

        summary = events.get_activity_summary()
        assert summary['total_events'] == 2
        assert summary['event_type_counts'] == {'CREATED': 2}
        assert summary['entity_type_counts'] == {'crew': 1, 'customer': 1}
