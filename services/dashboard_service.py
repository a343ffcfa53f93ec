"""
Dashboard Service - Headline numbers for the admin dashboard.
"""

import logging
from datetime import date, timedelta
from typing import Dict, Any, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from database.models import Customer, Estimate, Invoice, ServiceSchedule, ServiceScheduleInstance

logger = logging.getLogger(__name__)

ACTIVE_JOB_STATUSES = ('scheduled', 'in_progress')
UPCOMING_DAYS = 7


class DashboardService:
    """Aggregates for the dashboard cards and lists."""

    def __init__(self, session: Session):
        self.session = session

    def get_metrics(self, today: date = None) -> Dict[str, Any]:
        today = today or date.today()

        total_revenue = self.session.query(func.sum(Invoice.amount_paid)).scalar() or 0
        outstanding = self.session.query(func.sum(Invoice.balance)).filter(
            Invoice.status.notin_(['paid', 'cancelled'])
        ).scalar() or 0
        overdue_count = self.session.query(func.count(Invoice.id)).filter(
            Invoice.status == 'overdue'
        ).scalar() or 0

        active_jobs = self.session.query(func.count(ServiceSchedule.id)).filter(
            ServiceSchedule.status.in_(ACTIVE_JOB_STATUSES)
        ).scalar() or 0
        jobs_today = self.session.query(func.count(ServiceSchedule.id)).filter(
            ServiceSchedule.scheduled_date == today,
            ServiceSchedule.status != 'cancelled'
        ).scalar() or 0

        total_customers = self.session.query(func.count(Customer.id)).scalar() or 0
        active_customers = self.session.query(func.count(Customer.id)).filter(
            Customer.status == 'active'
        ).scalar() or 0

        return {
            'total_revenue': round(float(total_revenue), 2),
            'outstanding_balance': round(float(outstanding), 2),
            'overdue_invoices': overdue_count,
            'active_jobs': active_jobs,
            'jobs_today': jobs_today,
            'active_customers': active_customers,
            'total_customers': total_customers
        }

    def get_upcoming_services(self, today: date = None, days: int = UPCOMING_DAYS) -> List[Dict]:
        """Scheduled services and materialised recurring visits in the next `days` days."""
        today = today or date.today()
        until = today + timedelta(days=days)

        schedules = self.session.query(ServiceSchedule).filter(
            ServiceSchedule.scheduled_date >= today,
            ServiceSchedule.scheduled_date <= until,
            ServiceSchedule.status.in_(ACTIVE_JOB_STATUSES)
        ).all()
        upcoming = [{
            'schedule_id': s.id,
            'instance_id': None,
            'date': s.scheduled_date.isoformat(),
            'time_window': s.scheduled_time_window,
            'service': s.display_name,
            'address': s.property.full_address if s.property else None,
            'status': s.status
        } for s in schedules]

        instances = self.session.query(ServiceScheduleInstance).filter(
            ServiceScheduleInstance.scheduled_date >= today,
            ServiceScheduleInstance.scheduled_date <= until,
            ServiceScheduleInstance.status.in_(['pending', 'confirmed', 'rescheduled'])
        ).all()
        for instance in instances:
            schedule = instance.schedule
            # The first visit of a recurring schedule is the schedule row itself
            if schedule.scheduled_date == instance.scheduled_date:
                continue
            upcoming.append({
                'schedule_id': schedule.id,
                'instance_id': instance.id,
                'date': instance.scheduled_date.isoformat(),
                'time_window': schedule.scheduled_time_window,
                'service': schedule.display_name,
                'address': schedule.property.full_address if schedule.property else None,
                'status': instance.status
            })

        return sorted(upcoming, key=lambda item: item['date'])

    def get_recent_invoices(self, limit: int = 5) -> List[Dict]:
        invoices = self.session.query(Invoice).order_by(Invoice.created_at.desc()).limit(limit).all()
        return [i.to_dict(include_items=False) for i in invoices]

    def get_estimate_pipeline(self) -> Dict[str, Dict[str, Any]]:
        rows = self.session.query(
            Estimate.status, func.count(Estimate.id), func.sum(Estimate.total_amount)
        ).group_by(Estimate.status).all()
        return {
            status: {'count': count, 'total_amount': round(float(total or 0), 2)}
            for status, count, total in rows
        }

    def get_dashboard(self, today: date = None) -> Dict[str, Any]:
        return {
            'metrics': self.get_metrics(today),
            'upcoming_services': self.get_upcoming_services(today),
            'recent_invoices': self.get_recent_invoices(),
            'estimate_pipeline': self.get_estimate_pipeline()
        }
