"""
Tests for the background scheduler and its maintenance jobs
"""
import time
import pytest
from datetime import date
from unittest.mock import Mock
from services.scheduler import (
    BackgroundScheduler,
    expire_estimates_job,
    generate_recurring_services_job,
    mark_overdue_invoices_job
)


@pytest.fixture
def scheduler():
    scheduler = BackgroundScheduler(poll_seconds=0.01)
    yield scheduler
    scheduler.stop()


@pytest.mark.unit
class TestBackgroundScheduler:
    """Tests for job registration and execution"""

    def test_add_job_waits_one_interval(self, scheduler):
        scheduler.add_job('nightly', Mock(), interval_seconds=3600)
        status = scheduler.get_job_status()['nightly']
        assert status['interval'] == 3600
        assert status['run_count'] == 0
        assert status['last_run'] is None
        assert status['enabled'] is True

    def test_run_job_now(self, scheduler):
        func = Mock(return_value=4)
        scheduler.add_job('nightly', func, interval_seconds=3600, kwargs={'horizon_days': 7})

        assert scheduler.run_job_now('nightly') is True
        func.assert_called_once_with(horizon_days=7)
        status = scheduler.get_job_status()['nightly']
        assert status['run_count'] == 1
        assert status['last_result'] == 4
        assert status['last_run'] is not None

    def test_unknown_job(self, scheduler):
        assert scheduler.run_job_now('missing') is False
        assert scheduler.enable_job('missing') is False
        assert scheduler.disable_job('missing') is False
        assert scheduler.remove_job('missing') is False

    def test_failure_records_error(self, scheduler):
        scheduler.add_job('broken', Mock(side_effect=RuntimeError('disk full')), interval_seconds=60)

        assert scheduler.run_job_now('broken') is False
        status = scheduler.get_job_status()['broken']
        assert status['last_error'] == 'disk full'
        assert status['run_count'] == 0

    def test_success_clears_error(self, scheduler):
        func = Mock(side_effect=[RuntimeError('flaky'), 1])
        scheduler.add_job('flaky', func, interval_seconds=60)
        scheduler.run_job_now('flaky')
        scheduler.run_job_now('flaky')
        assert scheduler.get_job_status()['flaky']['last_error'] is None

    def test_remove_job(self, scheduler):
        scheduler.add_job('nightly', Mock(), interval_seconds=60)
        assert scheduler.remove_job('nightly') is True
        assert scheduler.get_job_status() == {}

    def test_loop_runs_due_jobs(self, scheduler):
        func = Mock()
        scheduler.add_job('now', func, interval_seconds=3600, run_immediately=True)
        scheduler.add_job('later', Mock(), interval_seconds=3600)
        scheduler.start()

        deadline = time.time() + 2
        while func.call_count == 0 and time.time() < deadline:
            time.sleep(0.01)

        assert scheduler.running
        assert scheduler.get_job_status()['now']['run_count'] == 1
        assert scheduler.get_job_status()['later']['run_count'] == 0

        scheduler.stop()
        assert not scheduler.running

    def test_disabled_jobs_skipped(self, scheduler):
        func = Mock()
        scheduler.add_job('paused', func, interval_seconds=1, run_immediately=True)
        scheduler.disable_job('paused')
        scheduler.start()
        time.sleep(0.1)
        func.assert_not_called()

        scheduler.enable_job('paused')
        deadline = time.time() + 2
        while func.call_count == 0 and time.time() < deadline:
            time.sleep(0.01)
        func.assert_called_once()


@pytest.mark.unit
class TestMaintenanceJobs:
    """Jobs open their own sessions, so they run against the bare database fixture"""

    def test_generate_recurring_services(self, database):
        from conftest import make_customer
        from database.connection import get_db_session
        from services.schedule_repository import ScheduleRepository

        with get_db_session() as session:
            customer = make_customer(session)
            ScheduleRepository(session).create_schedule({
                'property_id': customer['properties'][0]['id'],
                'scheduled_date': '2030-06-03',
                'description': 'Weekly mow',
                'base_price': 45,
                'is_recurring': True,
                'recurrence_type': 'weekly',
                'end_date': '2030-07-31',
                'auto_schedule': True,
            })

        assert generate_recurring_services_job(as_of=date(2030, 6, 3), horizon_days=21) == 2
        assert generate_recurring_services_job(as_of=date(2030, 6, 3), horizon_days=21) == 0

    def test_mark_overdue_invoices(self, database):
        from conftest import make_customer
        from database.connection import get_db_session
        from services.invoice_repository import InvoiceRepository

        with get_db_session() as session:
            customer = make_customer(session)
            InvoiceRepository(session).create_invoice({
                'customer_id': customer['id'],
                'invoice_date': '2030-03-01',
                'due_date': '2030-03-31',
                'items': [{'description': 'Hedge trimming', 'unit_price': 50}],
            })

        assert mark_overdue_invoices_job(today=date(2030, 3, 31)) == 0
        assert mark_overdue_invoices_job(today=date(2030, 4, 1)) == 1

    def test_expire_estimates(self, database):
        from conftest import make_customer
        from database.connection import get_db_session
        from services.estimate_repository import EstimateRepository

        with get_db_session() as session:
            customer = make_customer(session)
            EstimateRepository(session).create_estimate({
                'customer_id': customer['id'],
                'property_id': customer['properties'][0]['id'],
                'title': 'Spring cleanup',
                'valid_until': '2030-05-01',
                'items': [{'description': 'Mulch', 'quantity': 4, 'unit_price': 25}],
            })

        assert expire_estimates_job(today=date(2030, 5, 2)) == 1

    def test_jobs_skip_without_database(self, monkeypatch):
        monkeypatch.setattr('database.connection.is_db_configured', lambda: False)
        assert generate_recurring_services_job() == 0
        assert mark_overdue_invoices_job() == 0
        assert expire_estimates_job() == 0
