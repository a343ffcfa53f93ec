"""
Technician & Crew Routes Blueprint

- /api/technicians, /api/technicians/<id>, /api/technicians/<id>/schedule
- /api/crews, /api/crews/<id>
- /api/crews/<id>/members, /api/crew-members/<id>
- /api/crews/<id>/assignments, /api/crew-assignments/<id>
"""

import logging
from flask import Blueprint, request, jsonify

from auth import permission_required, current_user_id
from database.connection import get_db_session
from services.crew_repository import CrewRepository
from app.utils.helpers import get_json_body, arg_bool, arg_date
from validators import ValidationError

logger = logging.getLogger(__name__)

# Create blueprint
crews_bp = Blueprint('crews_bp', __name__)


# ============================================================================
# TECHNICIANS
# ============================================================================

@crews_bp.route('/api/technicians', methods=['GET'])
@permission_required('crews.read')
def list_technicians():
    with get_db_session() as db:
        technicians = CrewRepository(db).list_technicians(
            status=request.args.get('status'),
            search=request.args.get('search')
        )
        return jsonify({'success': True, 'technicians': technicians})


@crews_bp.route('/api/technicians/<technician_id>', methods=['GET'])
@permission_required('crews.read')
def get_technician(technician_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'technician': CrewRepository(db).get_technician(technician_id)})


@crews_bp.route('/api/technicians', methods=['POST'])
@permission_required('crews.write')
def create_technician():
    with get_db_session() as db:
        technician = CrewRepository(db, current_user_id()).create_technician(get_json_body())
    return jsonify({'success': True, 'technician': technician}), 201


@crews_bp.route('/api/technicians/<technician_id>', methods=['PUT'])
@permission_required('crews.write')
def update_technician(technician_id):
    with get_db_session() as db:
        technician = CrewRepository(db, current_user_id()).update_technician(technician_id, get_json_body())
    return jsonify({'success': True, 'technician': technician})


@crews_bp.route('/api/technicians/<technician_id>', methods=['DELETE'])
@permission_required('crews.write')
def delete_technician(technician_id):
    """Technicians with service history are deactivated instead of deleted."""
    with get_db_session() as db:
        CrewRepository(db, current_user_id()).delete_technician(technician_id)
    return jsonify({'success': True})


@crews_bp.route('/api/technicians/<technician_id>/schedule', methods=['GET'])
@permission_required('schedules.read')
def get_technician_schedule(technician_id):
    """Query: start, end (YYYY-MM-DD). start defaults to today."""
    with get_db_session() as db:
        schedule = CrewRepository(db).get_technician_schedule(
            technician_id, arg_date('start'), arg_date('end')
        )
        return jsonify({'success': True, 'schedule': schedule})


# ============================================================================
# CREWS
# ============================================================================

@crews_bp.route('/api/crews', methods=['GET'])
@permission_required('crews.read')
def list_crews():
    with get_db_session() as db:
        return jsonify({'success': True, 'crews': CrewRepository(db).list_crews(request.args.get('status'))})


@crews_bp.route('/api/crews/<crew_id>', methods=['GET'])
@permission_required('crews.read')
def get_crew(crew_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'crew': CrewRepository(db).get_crew(crew_id)})


@crews_bp.route('/api/crews', methods=['POST'])
@permission_required('crews.write')
def create_crew():
    with get_db_session() as db:
        crew = CrewRepository(db, current_user_id()).create_crew(get_json_body())
    return jsonify({'success': True, 'crew': crew}), 201


@crews_bp.route('/api/crews/<crew_id>', methods=['PUT'])
@permission_required('crews.write')
def update_crew(crew_id):
    with get_db_session() as db:
        crew = CrewRepository(db, current_user_id()).update_crew(crew_id, get_json_body())
    return jsonify({'success': True, 'crew': crew})


@crews_bp.route('/api/crews/<crew_id>', methods=['DELETE'])
@permission_required('crews.write')
def delete_crew(crew_id):
    with get_db_session() as db:
        CrewRepository(db, current_user_id()).delete_crew(crew_id)
    return jsonify({'success': True})


# ============================================================================
# CREW MEMBERS
# ============================================================================

@crews_bp.route('/api/crews/<crew_id>/members', methods=['GET'])
@permission_required('crews.read')
def list_crew_members(crew_id):
    with get_db_session() as db:
        members = CrewRepository(db).list_crew_members(crew_id, include_former=arg_bool('include_former'))
        return jsonify({'success': True, 'members': members})


@crews_bp.route('/api/crews/<crew_id>/members', methods=['POST'])
@permission_required('crews.write')
def add_crew_member(crew_id):
    with get_db_session() as db:
        member = CrewRepository(db, current_user_id()).add_crew_member(crew_id, get_json_body())
    return jsonify({'success': True, 'member': member}), 201


@crews_bp.route('/api/crew-members/<member_id>', methods=['PUT'])
@permission_required('crews.write')
def update_crew_member(member_id):
    with get_db_session() as db:
        member = CrewRepository(db, current_user_id()).update_crew_member(member_id, get_json_body())
    return jsonify({'success': True, 'member': member})


@crews_bp.route('/api/crew-members/<member_id>', methods=['DELETE'])
@permission_required('crews.write')
def remove_crew_member(member_id):
    """Ends the membership (end_date = today); history is kept."""
    with get_db_session() as db:
        member = CrewRepository(db, current_user_id()).remove_crew_member(member_id)
    return jsonify({'success': True, 'member': member})


# ============================================================================
# CREW ASSIGNMENTS
# ============================================================================

@crews_bp.route('/api/crews/<crew_id>/assignments', methods=['GET'])
@permission_required('schedules.read')
def list_crew_assignments(crew_id):
    with get_db_session() as db:
        repo = CrewRepository(db)
        repo.get_crew(crew_id)
        return jsonify({'success': True, 'assignments': repo.list_crew_assignments(crew_id=crew_id)})


@crews_bp.route('/api/crews/<crew_id>/assignments', methods=['POST'])
@permission_required('schedules.write')
def assign_crew(crew_id):
    data = get_json_body()
    if not data.get('service_schedule_id'):
        raise ValidationError('Please select a service', 'service_schedule_id')
    with get_db_session() as db:
        assignment = CrewRepository(db, current_user_id()).assign_crew(
            crew_id, data['service_schedule_id'], data.get('notes')
        )
    return jsonify({'success': True, 'assignment': assignment}), 201


@crews_bp.route('/api/crew-assignments/<assignment_id>', methods=['PUT'])
@permission_required('schedules.status')
def update_crew_assignment(assignment_id):
    data = get_json_body()
    with get_db_session() as db:
        assignment = CrewRepository(db, current_user_id()).update_assignment_status(
            assignment_id, data.get('status')
        )
    return jsonify({'success': True, 'assignment': assignment})


@crews_bp.route('/api/crew-assignments/<assignment_id>', methods=['DELETE'])
@permission_required('schedules.write')
def unassign_crew(assignment_id):
    with get_db_session() as db:
        CrewRepository(db, current_user_id()).unassign_crew(assignment_id)
    return jsonify({'success': True})
