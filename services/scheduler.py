"""
Background Job Scheduler - Periodic maintenance for schedules and billing.

Jobs:
- generate_recurring_services: materialise upcoming visits of auto-scheduled
  recurring services
- mark_overdue_invoices: flag unpaid invoices past their due date
- expire_estimates: expire draft/sent estimates past their valid-until date
"""

import logging
import threading
from datetime import datetime, timedelta, date
from typing import Dict, Any, Optional, Callable

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None


class BackgroundScheduler:
    """Interval scheduler running jobs on a single daemon thread."""

    def __init__(self, poll_seconds: float = 10):
        self.jobs: Dict[str, Dict] = {}
        self.running = False
        self.poll_seconds = poll_seconds
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()
        self._stop_event = threading.Event()

    def add_job(self, job_id: str, func: Callable, interval_seconds: int,
                run_immediately: bool = False, kwargs: Dict = None):
        """
        Register (or replace) a job.

        Args:
            job_id: Unique identifier for the job
            func: Function to call
            interval_seconds: Seconds between runs
            run_immediately: Run on the next poll instead of after one interval
            kwargs: Keyword arguments passed to func
        """
        now = datetime.utcnow()
        with self._lock:
            self.jobs[job_id] = {
                'func': func,
                'interval': interval_seconds,
                'kwargs': kwargs or {},
                'last_run': None,
                'next_run': now if run_immediately else now + timedelta(seconds=interval_seconds),
                'run_count': 0,
                'last_error': None,
                'last_result': None,
                'enabled': True
            }
        logger.info(f"Added job '{job_id}' with interval {interval_seconds}s")

    def remove_job(self, job_id: str) -> bool:
        with self._lock:
            removed = self.jobs.pop(job_id, None) is not None
        if removed:
            logger.info(f"Removed job '{job_id}'")
        return removed

    def enable_job(self, job_id: str) -> bool:
        with self._lock:
            if job_id not in self.jobs:
                return False
            self.jobs[job_id]['enabled'] = True
            return True

    def disable_job(self, job_id: str) -> bool:
        """Keep the job registered but skip it until re-enabled."""
        with self._lock:
            if job_id not in self.jobs:
                return False
            self.jobs[job_id]['enabled'] = False
            return True

    def get_job_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                job_id: {
                    'interval': job['interval'],
                    'last_run': job['last_run'].isoformat() if job['last_run'] else None,
                    'next_run': job['next_run'].isoformat() if job['next_run'] else None,
                    'run_count': job['run_count'],
                    'last_error': job['last_error'],
                    'last_result': job['last_result'],
                    'enabled': job['enabled']
                }
                for job_id, job in self.jobs.items()
            }

    def start(self):
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self.running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name='background-scheduler', daemon=True)
        self._thread.start()
        logger.info("Background scheduler started")

    def stop(self):
        self.running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Background scheduler stopped")

    def _execute(self, job_id: str, job: Dict) -> bool:
        started = datetime.utcnow()
        try:
            logger.debug(f"Running job '{job_id}'")
            result = job['func'](**job['kwargs'])
        except Exception as e:
            logger.exception(f"Job '{job_id}' failed: {e}")
            with self._lock:
                job['last_error'] = str(e)
                job['next_run'] = started + timedelta(seconds=job['interval'])
            return False

        with self._lock:
            job['last_run'] = started
            job['next_run'] = started + timedelta(seconds=job['interval'])
            job['run_count'] += 1
            job['last_error'] = None
            job['last_result'] = result
        return True

    def _run_loop(self):
        while self.running and not self._stop_event.is_set():
            now = datetime.utcnow()
            with self._lock:
                due = [
                    (job_id, job) for job_id, job in self.jobs.items()
                    if job['enabled'] and job['next_run'] and now >= job['next_run']
                ]

            for job_id, job in due:
                self._execute(job_id, job)

            self._stop_event.wait(timeout=self.poll_seconds)

    def run_job_now(self, job_id: str) -> bool:
        """Run a job on the calling thread. False when unknown or failed."""
        with self._lock:
            job = self.jobs.get(job_id)
        if job is None:
            return False
        return self._execute(job_id, job)


def get_scheduler() -> BackgroundScheduler:
    """Get or create the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = BackgroundScheduler()
    return _scheduler


# =============================================================================
# SCHEDULED JOBS
# =============================================================================

def generate_recurring_services_job(as_of: date = None, horizon_days: int = None) -> int:
    """Create visits for auto-scheduled recurring services coming due."""
    from database.connection import get_db_session, is_db_configured
    from services.schedule_repository import ScheduleRepository

    if not is_db_configured():
        return 0

    with get_db_session() as session:
        return len(ScheduleRepository(session).generate_due_instances(as_of, horizon_days))


def mark_overdue_invoices_job(today: date = None) -> int:
    """Flag unpaid invoices past their due date as overdue."""
    from database.connection import get_db_session, is_db_configured
    from services.invoice_repository import InvoiceRepository

    if not is_db_configured():
        return 0

    with get_db_session() as session:
        return InvoiceRepository(session).mark_overdue_invoices(today)


def expire_estimates_job(today: date = None) -> int:
    from database.connection import get_db_session, is_db_configured
    from services.estimate_repository import EstimateRepository

    if not is_db_configured():
        return 0

    with get_db_session() as session:
        return EstimateRepository(session).mark_expired(today)


def init_scheduler(settings: Dict[str, Any]) -> BackgroundScheduler:
    """Register the default jobs and start the scheduler."""
    scheduler = get_scheduler()

    scheduler.add_job(
        'generate_recurring_services',
        generate_recurring_services_job,
        interval_seconds=settings.get('RECURRING_SERVICES_INTERVAL', 3600),
        run_immediately=True
    )
    scheduler.add_job(
        'mark_overdue_invoices',
        mark_overdue_invoices_job,
        interval_seconds=settings.get('OVERDUE_INVOICES_INTERVAL', 3600),
        run_immediately=True
    )
    scheduler.add_job(
        'expire_estimates',
        expire_estimates_job,
        interval_seconds=24 * 60 * 60,
        run_immediately=True
    )

    scheduler.start()
    logger.info("Scheduler initialized with default jobs")
    return scheduler
