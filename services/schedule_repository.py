"""
Schedule Repository - Service catalog, scheduled services and recurring visits.

A recurring schedule row is its first visit. Later visits are materialised as
ServiceScheduleInstance rows when auto_schedule is on: next_scheduled_date is
always the first visit that has not been materialised yet.
"""

import logging
from datetime import datetime, date, timedelta
from typing import List, Optional, Dict, Any

from sqlalchemy.orm import Session

from config import get_settings
from database.models import (
    Property, ServiceType, ServiceSchedule, ServiceScheduleInstance, Technician, Crew
)
from services.errors import NotFoundError
from services.event_logger import get_event_logger
from services.invoice_repository import InvoiceRepository
from services.list_query import filter_records, sort_records
from services.recurrence import calculate_next_service_date, next_date_for_schedule
from validators import (
    ValidationError, validate_service_schedule_data, raise_for_errors,
    parse_date, parse_number, SCHEDULE_STATUSES, INSTANCE_STATUSES, UNIT_TYPES
)

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = [
    'service_type_id', 'assigned_technician_id', 'scheduled_date', 'scheduled_time_window',
    'description', 'base_price', 'notes',
    'recurrence_type', 'recurrence_interval', 'recurrence_days', 'start_date', 'end_date',
    'auto_schedule', 'auto_invoice', 'is_recurring'
]
DATE_FIELDS = {'scheduled_date', 'start_date', 'end_date'}
RECURRENCE_FIELDS = {'recurrence_type', 'recurrence_interval', 'recurrence_days', 'start_date', 'end_date',
                     'auto_schedule', 'is_recurring'}

SCHEDULE_SEARCH_FIELDS = ['display_name', 'property.full_address', 'technician.full_name', 'notes']


class ScheduleRepository:
    """Repository for service types, schedules and schedule instances."""

    def __init__(self, session: Session, user_id: str = None, settings: Dict[str, Any] = None):
        self.session = session
        self.user_id = user_id
        self.settings = settings if settings is not None else get_settings()
        self.events = get_event_logger(session, user_id)

    def _get(self, model, entity: str, entity_id: str):
        obj = self.session.get(model, entity_id)
        if not obj:
            raise NotFoundError(entity, entity_id)
        return obj

    # =========================================================================
    # SERVICE TYPES
    # =========================================================================

    def list_service_types(self) -> List[Dict]:
        return [t.to_dict() for t in self.session.query(ServiceType).order_by(ServiceType.label).all()]

    def get_service_type(self, service_type_id: str) -> Dict:
        return self._get(ServiceType, 'service_type', service_type_id).to_dict()

    def _service_type_values(self, data: Dict, partial: bool) -> Dict:
        values = {}
        for key in ('name', 'label'):
            if not partial or key in data:
                value = (data.get(key) or '').strip()
                if not value:
                    raise ValidationError(f"{key.capitalize()} is required", key)
                values[key] = value
        if 'description' in data:
            values['description'] = data['description']
        if not partial or 'base_price' in data:
            price = parse_number(data.get('base_price', 0), 'base_price') or 0
            if price < 0:
                raise ValidationError('Price cannot be negative', 'base_price')
            values['base_price'] = price
        if not partial or 'unit_type' in data:
            unit_type = data.get('unit_type', 'flat_rate')
            if unit_type not in UNIT_TYPES:
                raise ValidationError('Unit type must be flat_rate, per_sqft or per_yard', 'unit_type')
            values['unit_type'] = unit_type
        if not partial or 'tax_rate' in data:
            rate = parse_number(data.get('tax_rate', 0), 'tax_rate') or 0
            if rate < 0 or rate > 1:
                raise ValidationError('Tax rate must be between 0 and 1', 'tax_rate')
            values['tax_rate'] = rate
        return values

    def create_service_type(self, data: Dict) -> Dict:
        values = self._service_type_values(data, partial=False)
        if self.session.query(ServiceType.id).filter(ServiceType.label == values['label']).first():
            raise ValidationError('A service type with this label already exists', 'label')

        service_type = ServiceType(**values)
        self.session.add(service_type)
        self.session.flush()

        self.events.log_create('service_type', service_type.id, f"Service type '{service_type.label}' was created")
        logger.info(f"Created service type: {service_type.id}")
        return service_type.to_dict()

    def update_service_type(self, service_type_id: str, data: Dict) -> Dict:
        service_type = self._get(ServiceType, 'service_type', service_type_id)
        values = self._service_type_values(data, partial=True)
        if 'label' in values:
            duplicate = self.session.query(ServiceType.id).filter(
                ServiceType.label == values['label'], ServiceType.id != service_type_id
            ).first()
            if duplicate:
                raise ValidationError('A service type with this label already exists', 'label')

        changes = {}
        for key, value in values.items():
            old_value = getattr(service_type, key)
            if old_value != value:
                changes[key] = {'old': old_value, 'new': value}
            setattr(service_type, key, value)

        service_type.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_update('service_type', service_type_id, changes)
        logger.info(f"Updated service type: {service_type_id}")
        return service_type.to_dict()

    # =========================================================================
    # SCHEDULES
    # =========================================================================

    def list_schedules(self, status: str = None, property_id: str = None, technician_id: str = None,
                       date_from=None, date_to=None, search: str = None,
                       sort_field: str = 'scheduled_date', sort_order: str = 'asc') -> List[Dict]:
        query = self.session.query(ServiceSchedule)
        if property_id:
            query = query.filter(ServiceSchedule.property_id == property_id)
        if technician_id:
            query = query.filter(ServiceSchedule.assigned_technician_id == technician_id)
        date_from = parse_date(date_from, 'date_from')
        date_to = parse_date(date_to, 'date_to')
        if date_from:
            query = query.filter(ServiceSchedule.scheduled_date >= date_from)
        if date_to:
            query = query.filter(ServiceSchedule.scheduled_date <= date_to)

        records = [s.to_dict() for s in query.all()]
        records = filter_records(records, search, SCHEDULE_SEARCH_FIELDS, {'status': status})
        return sort_records(records, sort_field, sort_order)

    def get_schedule(self, schedule_id: str) -> Dict:
        schedule = self._get(ServiceSchedule, 'service_schedule', schedule_id)
        data = schedule.to_dict()
        data['instances'] = [i.to_dict() for i in schedule.instances]
        data['crew_assignments'] = [a.to_dict() for a in schedule.crew_assignments]
        return data

    def _resolve_service(self, schedule: ServiceSchedule):
        """Price and description fall back to the service type for catalog services."""
        if schedule.service_type_id:
            service_type = self._get(ServiceType, 'service_type', schedule.service_type_id)
            if schedule.base_price is None:
                schedule.base_price = service_type.base_price
            if not schedule.description:
                schedule.description = service_type.label

    def _apply_recurrence(self, schedule: ServiceSchedule):
        """Recompute the recurrence dates; with auto_schedule the first upcoming visit is materialised."""
        if not schedule.is_recurring or schedule.recurrence_type in (None, 'one_time'):
            schedule.next_scheduled_date = None
            return

        schedule.start_date = schedule.start_date or schedule.scheduled_date
        schedule.next_scheduled_date = next_date_for_schedule(schedule)
        if schedule.auto_schedule and schedule.next_scheduled_date:
            self._materialise_next(schedule)

    def _materialise_next(self, schedule: ServiceSchedule) -> Optional[ServiceScheduleInstance]:
        visit_date = schedule.next_scheduled_date
        exists = self.session.query(ServiceScheduleInstance.id).filter(
            ServiceScheduleInstance.service_schedule_id == schedule.id,
            ServiceScheduleInstance.scheduled_date == visit_date
        ).first()

        instance = None
        if not exists:
            instance = ServiceScheduleInstance(
                schedule=schedule,
                scheduled_date=visit_date,
                status='pending'
            )
            self.session.add(instance)

        schedule.last_scheduled_date = visit_date
        schedule.next_scheduled_date = calculate_next_service_date(
            visit_date, schedule.recurrence_type, schedule.recurrence_interval,
            schedule.recurrence_days or [], schedule.end_date
        )
        return instance

    def _check_references(self, data: Dict):
        if data.get('property_id'):
            self._get(Property, 'property', data['property_id'])
        if data.get('assigned_technician_id'):
            technician = self._get(Technician, 'technician', data['assigned_technician_id'])
            if technician.status != 'active':
                raise ValidationError('Technician is not active', 'assigned_technician_id')

    def create_schedule(self, data: Dict) -> Dict:
        raise_for_errors(validate_service_schedule_data(data))
        self._check_references(data)

        schedule = ServiceSchedule(
            property=self.session.get(Property, data['property_id']),
            service_type_id=data.get('service_type_id') or None,
            assigned_technician_id=data.get('assigned_technician_id') or None,
            scheduled_date=parse_date(data['scheduled_date'], 'scheduled_date'),
            scheduled_time_window=data.get('scheduled_time_window') or 'morning',
            status=data.get('status', 'scheduled'),
            description=data.get('description'),
            base_price=parse_number(data.get('base_price'), 'base_price'),
            notes=data.get('notes'),
            is_recurring=bool(data.get('is_recurring', False)),
            recurrence_type=data.get('recurrence_type', 'one_time') if data.get('is_recurring') else 'one_time',
            recurrence_interval=data.get('recurrence_interval', 1),
            recurrence_days=data.get('recurrence_days') or [],
            start_date=parse_date(data.get('start_date'), 'start_date'),
            end_date=parse_date(data.get('end_date'), 'end_date'),
            auto_schedule=bool(data.get('auto_schedule', False)),
            auto_invoice=bool(data.get('auto_invoice', False))
        )
        self._resolve_service(schedule)
        self.session.add(schedule)
        self.session.flush()

        self._apply_recurrence(schedule)
        self.session.flush()

        self.events.log('service_schedule', schedule.id, 'SERVICE_SCHEDULED',
                        f"{schedule.display_name} scheduled for {schedule.scheduled_date.isoformat()}",
                        {'property_id': schedule.property_id, 'is_recurring': schedule.is_recurring})
        logger.info(f"Created service schedule: {schedule.id}")
        return schedule.to_dict()

    def update_schedule(self, schedule_id: str, data: Dict) -> Dict:
        schedule = self._get(ServiceSchedule, 'service_schedule', schedule_id)
        raise_for_errors(validate_service_schedule_data(data, partial=True))
        self._check_references(data)

        becomes_custom = 'service_type_id' in data and not data['service_type_id']
        if becomes_custom:
            description = data.get('description', schedule.description)
            price = parse_number(data.get('base_price', schedule.base_price), 'base_price')
            if not description:
                raise ValidationError('Description is required for custom services', 'description')
            if price is None or price <= 0:
                raise ValidationError('Price must be greater than 0 for custom services', 'base_price')

        changes = {}
        for key in SCHEDULE_FIELDS:
            if key not in data:
                continue
            value = data[key]
            if key in DATE_FIELDS:
                value = parse_date(value, key)
            elif key == 'base_price':
                value = parse_number(value, key)
            elif key in ('service_type_id', 'assigned_technician_id'):
                value = value or None
            old_value = getattr(schedule, key)
            if old_value != value:
                changes[key] = {'old': _jsonable(old_value), 'new': _jsonable(value)}
            setattr(schedule, key, value)

        if 'service_type_id' in changes and schedule.service_type_id:
            if 'base_price' not in data:
                schedule.base_price = None
            if 'description' not in data:
                schedule.description = None
        self._resolve_service(schedule)

        if RECURRENCE_FIELDS & set(changes):
            self._apply_recurrence(schedule)

        schedule.updated_at = datetime.utcnow()
        self.session.flush()
        if {'service_type_id', 'assigned_technician_id'} & set(changes):
            self.session.expire(schedule, ['service_type', 'technician'])

        self.events.log_update('service_schedule', schedule_id, changes)
        if 'status' in data:
            return self.update_status(schedule_id, data['status'])

        logger.info(f"Updated service schedule: {schedule_id}")
        return schedule.to_dict()

    def update_status(self, schedule_id: str, status: str) -> Dict:
        """Change the status. Completing an auto-invoiced service creates its invoice."""
        schedule = self._get(ServiceSchedule, 'service_schedule', schedule_id)
        if status not in SCHEDULE_STATUSES:
            raise ValidationError('Invalid status', 'status')

        old_status = schedule.status
        if old_status == status:
            return schedule.to_dict()

        schedule.status = status
        schedule.updated_at = datetime.utcnow()
        self.session.flush()
        self.events.log_status_change('service_schedule', schedule_id, old_status, status)

        invoice = None
        if status == 'completed' and schedule.auto_invoice and not schedule.invoice_id:
            invoice = InvoiceRepository(self.session, self.user_id, self.settings).create_invoice_from_schedule(
                schedule_id
            )

        logger.info(f"Service schedule {schedule_id} status: {old_status} -> {status}")
        data = schedule.to_dict()
        data['invoice'] = invoice
        return data

    def delete_schedule(self, schedule_id: str) -> bool:
        schedule = self._get(ServiceSchedule, 'service_schedule', schedule_id)
        if schedule.invoice_id:
            raise ValidationError('Invoiced services cannot be deleted', 'invoice_id')

        name = schedule.display_name
        self.session.delete(schedule)
        self.session.flush()

        self.events.log_delete('service_schedule', schedule_id, f"{name} was removed from the schedule")
        logger.info(f"Deleted service schedule: {schedule_id}")
        return True

    def generate_due_instances(self, as_of: date = None, horizon_days: int = None) -> List[Dict]:
        """
        Materialise every auto-scheduled visit due within the horizon.

        Returns:
            The created instances
        """
        as_of = as_of or date.today()
        if horizon_days is None:
            horizon_days = self.settings.get('SCHEDULE_HORIZON_DAYS', 14)
        limit = as_of + timedelta(days=horizon_days)

        schedules = self.session.query(ServiceSchedule).filter(
            ServiceSchedule.is_recurring == True,
            ServiceSchedule.auto_schedule == True,
            ServiceSchedule.status != 'cancelled',
            ServiceSchedule.next_scheduled_date.isnot(None),
            ServiceSchedule.next_scheduled_date <= limit
        ).all()

        created = []
        for schedule in schedules:
            while schedule.next_scheduled_date and schedule.next_scheduled_date <= limit:
                instance = self._materialise_next(schedule)
                if instance is not None:
                    self.session.flush()
                    created.append(instance)

        self.session.flush()
        if created:
            logger.info(f"Generated {len(created)} recurring service visit(s)")
        return [i.to_dict() for i in created]

    # =========================================================================
    # INSTANCES
    # =========================================================================

    def list_instances(self, schedule_id: str = None, status: str = None,
                       date_from=None, date_to=None) -> List[Dict]:
        query = self.session.query(ServiceScheduleInstance)
        if schedule_id:
            query = query.filter(ServiceScheduleInstance.service_schedule_id == schedule_id)
        if status and status != 'all':
            query = query.filter(ServiceScheduleInstance.status == status)
        date_from = parse_date(date_from, 'date_from')
        date_to = parse_date(date_to, 'date_to')
        if date_from:
            query = query.filter(ServiceScheduleInstance.scheduled_date >= date_from)
        if date_to:
            query = query.filter(ServiceScheduleInstance.scheduled_date <= date_to)
        return [i.to_dict() for i in query.order_by(ServiceScheduleInstance.scheduled_date).all()]

    def update_instance(self, instance_id: str, data: Dict) -> Dict:
        instance = self._get(ServiceScheduleInstance, 'schedule_instance', instance_id)

        old_status = instance.status
        if 'status' in data:
            if data['status'] not in INSTANCE_STATUSES:
                raise ValidationError('Invalid status', 'status')
            instance.status = data['status']
            instance.completed_at = datetime.utcnow() if data['status'] == 'completed' else None
        if 'scheduled_date' in data:
            new_date = parse_date(data['scheduled_date'], 'scheduled_date')
            if new_date is None:
                raise ValidationError('Scheduled date is required', 'scheduled_date')
            if new_date != instance.scheduled_date:
                instance.scheduled_date = new_date
                if 'status' not in data:
                    instance.status = 'rescheduled'
        if 'crew_id' in data:
            if data['crew_id']:
                self._get(Crew, 'crew', data['crew_id'])
            instance.crew_id = data['crew_id'] or None
        for key in ('notes', 'weather_conditions'):
            if key in data:
                setattr(instance, key, data[key])

        instance.updated_at = datetime.utcnow()
        self.session.flush()

        if old_status != instance.status:
            self.events.log_status_change('schedule_instance', instance_id, old_status, instance.status)
        logger.info(f"Updated schedule instance: {instance_id}")
        return instance.to_dict()


def _jsonable(value):
    if isinstance(value, date):
        return value.isoformat()
    return value
