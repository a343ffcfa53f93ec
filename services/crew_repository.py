"""
Crew Repository - Technicians, crews, crew membership and crew dispatch.
"""

import logging
from datetime import datetime, date
from typing import List, Optional, Dict

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.utils.formatters import format_phone_number
from database.models import Technician, Crew, CrewMember, CrewAssignment, ServiceSchedule
from services.errors import NotFoundError
from services.event_logger import get_event_logger
from services.list_query import filter_records
from validators import (
    ValidationError, validate_technician_data, validate_crew_data,
    validate_crew_member_data, raise_for_errors, parse_date, CREW_ROLES
)

logger = logging.getLogger(__name__)

ASSIGNMENT_STATUSES = {'pending', 'accepted', 'completed', 'cancelled'}

TECHNICIAN_FIELDS = ['first_name', 'last_name', 'email', 'phone', 'status']
CREW_FIELDS = ['name', 'description', 'status']


class CrewRepository:
    """Repository for technicians and crews."""

    def __init__(self, session: Session, user_id: str = None):
        self.session = session
        self.user_id = user_id
        self.events = get_event_logger(session, user_id)

    def _get(self, model, entity: str, entity_id: str):
        obj = self.session.get(model, entity_id)
        if not obj:
            raise NotFoundError(entity, entity_id)
        return obj

    # =========================================================================
    # TECHNICIANS
    # =========================================================================

    def list_technicians(self, status: str = None, search: str = None) -> List[Dict]:
        query = self.session.query(Technician)
        if status and status != 'all':
            query = query.filter(Technician.status == status)
        technicians = query.order_by(Technician.last_name, Technician.first_name).all()
        return filter_records([t.to_dict() for t in technicians], search, ['full_name', 'email', 'phone'])

    def get_technician(self, technician_id: str) -> Dict:
        technician = self._get(Technician, 'technician', technician_id)
        data = technician.to_dict()
        data['crews'] = [
            {'crew_id': m.crew_id, 'crew_name': m.crew.name, 'role': m.role, 'is_primary_crew': bool(m.is_primary_crew)}
            for m in technician.memberships if m.end_date is None
        ]
        return data

    def create_technician(self, data: Dict) -> Dict:
        raise_for_errors(validate_technician_data(data))

        technician = Technician(
            first_name=data['first_name'].strip(),
            last_name=data['last_name'].strip(),
            email=data['email'].strip().lower(),
            phone=format_phone_number(data['phone']),
            status=data.get('status', 'active')
        )
        self.session.add(technician)
        self.session.flush()

        self.events.log_create('technician', technician.id, f"Technician '{technician.full_name}' was added")
        logger.info(f"Created technician: {technician.id}")
        return technician.to_dict()

    def update_technician(self, technician_id: str, data: Dict) -> Dict:
        technician = self._get(Technician, 'technician', technician_id)
        raise_for_errors(validate_technician_data(data, partial=True))
        if data.get('phone'):
            data = {**data, 'phone': format_phone_number(data['phone'])}

        changes = {}
        for key in TECHNICIAN_FIELDS:
            if key in data:
                old_value = getattr(technician, key)
                if old_value != data[key]:
                    changes[key] = {'old': old_value, 'new': data[key]}
                setattr(technician, key, data[key])

        technician.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_update('technician', technician_id, changes)
        logger.info(f"Updated technician: {technician_id}")
        return technician.to_dict()

    def delete_technician(self, technician_id: str) -> bool:
        """Technicians with history are deactivated rather than removed."""
        technician = self._get(Technician, 'technician', technician_id)
        has_history = technician.memberships or self.session.query(ServiceSchedule.id).filter(
            ServiceSchedule.assigned_technician_id == technician_id
        ).first()

        if has_history:
            technician.status = 'inactive'
            technician.updated_at = datetime.utcnow()
            for membership in technician.memberships:
                if membership.end_date is None:
                    membership.end_date = date.today()
            self.session.flush()
            self.events.log_status_change('technician', technician_id, 'active', 'inactive')
            logger.info(f"Deactivated technician: {technician_id}")
        else:
            self.session.delete(technician)
            self.session.flush()
            self.events.log_delete('technician', technician_id)
            logger.info(f"Deleted technician: {technician_id}")
        return True

    def get_technician_schedule(self, technician_id: str, start: date = None, end: date = None) -> List[Dict]:
        """Services assigned to the technician directly or through an active crew."""
        self._get(Technician, 'technician', technician_id)
        start = parse_date(start, 'start') or date.today()
        end = parse_date(end, 'end')

        crew_ids = [
            m.crew_id for m in self.session.query(CrewMember).filter(
                CrewMember.technician_id == technician_id,
                CrewMember.end_date.is_(None)
            ).all()
        ]
        crew_schedule_ids = self.session.query(CrewAssignment.service_schedule_id).filter(
            CrewAssignment.crew_id.in_(crew_ids),
            CrewAssignment.status != 'cancelled'
        ) if crew_ids else None

        conditions = [ServiceSchedule.assigned_technician_id == technician_id]
        if crew_schedule_ids is not None:
            conditions.append(ServiceSchedule.id.in_(crew_schedule_ids))

        query = self.session.query(ServiceSchedule).filter(
            or_(*conditions),
            ServiceSchedule.scheduled_date >= start,
            ServiceSchedule.status != 'cancelled'
        )
        if end:
            query = query.filter(ServiceSchedule.scheduled_date <= end)

        return [s.to_dict() for s in query.order_by(ServiceSchedule.scheduled_date).all()]

    # =========================================================================
    # CREWS
    # =========================================================================

    def list_crews(self, status: str = None) -> List[Dict]:
        query = self.session.query(Crew)
        if status and status != 'all':
            query = query.filter(Crew.status == status)
        return [c.to_dict(include_members=True) for c in query.order_by(Crew.name).all()]

    def get_crew(self, crew_id: str) -> Dict:
        crew = self._get(Crew, 'crew', crew_id)
        data = crew.to_dict(include_members=True)
        data['assignments'] = [a.to_dict() for a in crew.assignments]
        return data

    def create_crew(self, data: Dict) -> Dict:
        raise_for_errors(validate_crew_data(data))

        crew = Crew(
            name=data['name'].strip(),
            description=data.get('description'),
            status=data.get('status', 'active')
        )
        self.session.add(crew)
        self.session.flush()

        self.events.log_create('crew', crew.id, f"Crew '{crew.name}' was created")
        logger.info(f"Created crew: {crew.id}")
        return crew.to_dict(include_members=True)

    def update_crew(self, crew_id: str, data: Dict) -> Dict:
        crew = self._get(Crew, 'crew', crew_id)
        raise_for_errors(validate_crew_data(data, partial=True))

        changes = {}
        for key in CREW_FIELDS:
            if key in data:
                old_value = getattr(crew, key)
                if old_value != data[key]:
                    changes[key] = {'old': old_value, 'new': data[key]}
                setattr(crew, key, data[key])

        crew.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_update('crew', crew_id, changes)
        logger.info(f"Updated crew: {crew_id}")
        return crew.to_dict(include_members=True)

    def delete_crew(self, crew_id: str) -> bool:
        crew = self._get(Crew, 'crew', crew_id)
        name = crew.name
        self.session.delete(crew)
        self.session.flush()

        self.events.log_delete('crew', crew_id, f"Crew '{name}' was deleted")
        logger.info(f"Deleted crew: {crew_id}")
        return True

    # =========================================================================
    # CREW MEMBERS
    # =========================================================================

    def list_crew_members(self, crew_id: str, include_former: bool = False) -> List[Dict]:
        crew = self._get(Crew, 'crew', crew_id)
        members = crew.members if include_former else crew.active_members()
        return [m.to_dict() for m in members]

    def _check_unique_role(self, crew_id: str, technician_id: str, role: str, exclude_id: Optional[str] = None):
        query = self.session.query(CrewMember.id).filter(
            CrewMember.crew_id == crew_id,
            CrewMember.technician_id == technician_id,
            CrewMember.role == role,
            CrewMember.end_date.is_(None)
        )
        if exclude_id:
            query = query.filter(CrewMember.id != exclude_id)
        if query.first():
            raise ValidationError('Technician already has this role in the crew', 'role')

    def add_crew_member(self, crew_id: str, data: Dict) -> Dict:
        """Add a technician to a crew. An active (crew, technician, role) must be unique."""
        crew = self._get(Crew, 'crew', crew_id)
        raise_for_errors(validate_crew_member_data(data))
        technician = self._get(Technician, 'technician', data['technician_id'])
        role = data.get('role', 'crew_member')

        self._check_unique_role(crew_id, technician.id, role)

        member = CrewMember(
            crew=crew,
            technician=technician,
            role=role,
            is_primary_crew=bool(data.get('is_primary_crew', False)),
            start_date=parse_date(data.get('start_date'), 'start_date') or date.today()
        )
        self.session.add(member)
        self.session.flush()

        self.events.log_create('crew_member', member.id,
                               f"{technician.full_name} joined crew '{crew.name}' as {role}",
                               {'crew_id': crew.id, 'technician_id': technician.id, 'role': role})
        logger.info(f"Added crew member: {member.id}")
        return member.to_dict()

    def update_crew_member(self, member_id: str, data: Dict) -> Dict:
        member = self._get(CrewMember, 'crew_member', member_id)

        if 'role' in data and data['role'] not in CREW_ROLES:
            raise ValidationError('Role must be crew_leader, crew_member or trainee', 'role')
        if data.get('role', member.role) != member.role and member.end_date is None:
            self._check_unique_role(member.crew_id, member.technician_id, data['role'], exclude_id=member.id)

        changes = {}
        for key in ('role', 'is_primary_crew', 'end_date'):
            if key in data:
                value = parse_date(data[key], key) if key == 'end_date' else data[key]
                old_value = getattr(member, key)
                if old_value != value:
                    changes[key] = {'old': str(old_value) if old_value else None, 'new': str(value) if value else None}
                setattr(member, key, value)

        member.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_update('crew_member', member_id, changes)
        logger.info(f"Updated crew member: {member_id}")
        return member.to_dict()

    def remove_crew_member(self, member_id: str) -> Dict:
        """End the membership today; the row stays for history."""
        member = self._get(CrewMember, 'crew_member', member_id)
        member.end_date = date.today()
        member.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log('crew_member', member_id, 'DELETED', 'Technician left the crew',
                        {'crew_id': member.crew_id, 'technician_id': member.technician_id})
        logger.info(f"Removed crew member: {member_id}")
        return member.to_dict()

    # =========================================================================
    # CREW ASSIGNMENTS
    # =========================================================================

    def list_crew_assignments(self, crew_id: str = None, schedule_id: str = None) -> List[Dict]:
        query = self.session.query(CrewAssignment)
        if crew_id:
            query = query.filter(CrewAssignment.crew_id == crew_id)
        if schedule_id:
            query = query.filter(CrewAssignment.service_schedule_id == schedule_id)

        assignments = []
        for assignment in query.order_by(CrewAssignment.created_at.desc()).all():
            data = assignment.to_dict()
            data['schedule'] = assignment.schedule.to_dict() if assignment.schedule else None
            assignments.append(data)
        return assignments

    def assign_crew(self, crew_id: str, schedule_id: str, notes: str = None) -> Dict:
        crew = self._get(Crew, 'crew', crew_id)
        schedule = self._get(ServiceSchedule, 'service_schedule', schedule_id)
        if crew.status != 'active':
            raise ValidationError('Crew is not active', 'crew_id')

        existing = self.session.query(CrewAssignment.id).filter(
            CrewAssignment.crew_id == crew_id,
            CrewAssignment.service_schedule_id == schedule_id
        ).first()
        if existing:
            raise ValidationError('Crew is already assigned to this service', 'crew_id')

        assignment = CrewAssignment(
            crew=crew,
            schedule=schedule,
            assigned_by=self.user_id,
            notes=notes
        )
        self.session.add(assignment)
        self.session.flush()

        self.events.log('crew_assignment', assignment.id, 'ASSIGNED',
                        f"Crew '{crew.name}' assigned to {schedule.display_name} on {schedule.scheduled_date}",
                        {'crew_id': crew.id, 'service_schedule_id': schedule.id})
        logger.info(f"Assigned crew {crew_id} to schedule {schedule_id}")
        return assignment.to_dict()

    def update_assignment_status(self, assignment_id: str, status: str) -> Dict:
        assignment = self._get(CrewAssignment, 'crew_assignment', assignment_id)
        if status not in ASSIGNMENT_STATUSES:
            raise ValidationError('Invalid assignment status', 'status')

        old_status = assignment.status
        assignment.status = status
        assignment.updated_at = datetime.utcnow()
        self.session.flush()

        if old_status != status:
            self.events.log_status_change('crew_assignment', assignment_id, old_status, status)
        logger.info(f"Updated crew assignment: {assignment_id}")
        return assignment.to_dict()

    def unassign_crew(self, assignment_id: str) -> bool:
        assignment = self._get(CrewAssignment, 'crew_assignment', assignment_id)
        self.session.delete(assignment)
        self.session.flush()
        self.events.log_delete('crew_assignment', assignment_id)
        logger.info(f"Deleted crew assignment: {assignment_id}")
        return True
