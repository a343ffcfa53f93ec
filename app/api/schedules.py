"""
Service Scheduling Routes Blueprint

- /api/service-types: catalog of services
- /api/schedules: scheduled (possibly recurring) services
- /api/schedules/<id>/status: status changes (auto-invoices on completion)
- /api/schedules/<id>/instances, /api/schedule-instances/<id>: generated visits
- /api/schedules/generate: materialise due recurring visits now
"""

import logging
from flask import Blueprint, request, jsonify

from auth import permission_required, current_user_id
from database.connection import get_db_session
from services.schedule_repository import ScheduleRepository
from app.utils.helpers import get_json_body, get_settings_from_app, arg_date, arg_int, list_args

logger = logging.getLogger(__name__)

# Create blueprint
schedules_bp = Blueprint('schedules_bp', __name__)


def _repo(db):
    return ScheduleRepository(db, current_user_id(), get_settings_from_app())


# ============================================================================
# SERVICE TYPES
# ============================================================================

@schedules_bp.route('/api/service-types', methods=['GET'])
@permission_required('schedules.read')
def list_service_types():
    with get_db_session() as db:
        return jsonify({'success': True, 'service_types': _repo(db).list_service_types()})


@schedules_bp.route('/api/service-types/<service_type_id>', methods=['GET'])
@permission_required('schedules.read')
def get_service_type(service_type_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'service_type': _repo(db).get_service_type(service_type_id)})


@schedules_bp.route('/api/service-types', methods=['POST'])
@permission_required('schedules.write')
def create_service_type():
    with get_db_session() as db:
        service_type = _repo(db).create_service_type(get_json_body())
    return jsonify({'success': True, 'service_type': service_type}), 201


@schedules_bp.route('/api/service-types/<service_type_id>', methods=['PUT'])
@permission_required('schedules.write')
def update_service_type(service_type_id):
    with get_db_session() as db:
        service_type = _repo(db).update_service_type(service_type_id, get_json_body())
    return jsonify({'success': True, 'service_type': service_type})


# ============================================================================
# SCHEDULES
# ============================================================================

@schedules_bp.route('/api/schedules', methods=['GET'])
@permission_required('schedules.read')
def list_schedules():
    """
    Query: search, status, property_id, technician_id, date_from, date_to,
    sort (scheduled_date by default), order.
    """
    with get_db_session() as db:
        schedules = _repo(db).list_schedules(
            property_id=request.args.get('property_id'),
            technician_id=request.args.get('technician_id'),
            date_from=arg_date('date_from'),
            date_to=arg_date('date_to'),
            **list_args()
        )
        return jsonify({'success': True, 'schedules': schedules, 'count': len(schedules)})


@schedules_bp.route('/api/schedules/<schedule_id>', methods=['GET'])
@permission_required('schedules.read')
def get_schedule(schedule_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'schedule': _repo(db).get_schedule(schedule_id)})


@schedules_bp.route('/api/schedules', methods=['POST'])
@permission_required('schedules.write')
def create_schedule():
    with get_db_session() as db:
        schedule = _repo(db).create_schedule(get_json_body())
    return jsonify({'success': True, 'schedule': schedule, 'message': 'Service scheduled successfully'}), 201


@schedules_bp.route('/api/schedules/<schedule_id>', methods=['PUT'])
@permission_required('schedules.write')
def update_schedule(schedule_id):
    with get_db_session() as db:
        schedule = _repo(db).update_schedule(schedule_id, get_json_body())
    return jsonify({'success': True, 'schedule': schedule})


@schedules_bp.route('/api/schedules/<schedule_id>/status', methods=['PUT'])
@permission_required('schedules.status')
def update_schedule_status(schedule_id):
    """Body: {"status": "scheduled|in_progress|completed|cancelled"}."""
    with get_db_session() as db:
        schedule = _repo(db).update_status(schedule_id, get_json_body().get('status'))
    return jsonify({'success': True, 'schedule': schedule, 'invoice': schedule.get('invoice')})


@schedules_bp.route('/api/schedules/<schedule_id>', methods=['DELETE'])
@permission_required('schedules.write')
def delete_schedule(schedule_id):
    with get_db_session() as db:
        _repo(db).delete_schedule(schedule_id)
    return jsonify({'success': True})


@schedules_bp.route('/api/schedules/generate', methods=['POST'])
@permission_required('schedules.write')
def generate_instances():
    """Query: horizon_days (defaults to SCHEDULE_HORIZON_DAYS)."""
    horizon = arg_int('horizon_days', get_settings_from_app().get('SCHEDULE_HORIZON_DAYS', 14),
                      minimum=0, maximum=365)
    with get_db_session() as db:
        created = _repo(db).generate_due_instances(horizon_days=horizon)
    return jsonify({'success': True, 'instances': created, 'count': len(created)})


# ============================================================================
# INSTANCES
# ============================================================================

@schedules_bp.route('/api/schedules/<schedule_id>/instances', methods=['GET'])
@permission_required('schedules.read')
def list_schedule_instances(schedule_id):
    with get_db_session() as db:
        repo = _repo(db)
        repo.get_schedule(schedule_id)
        instances = repo.list_instances(schedule_id=schedule_id, status=request.args.get('status'))
        return jsonify({'success': True, 'instances': instances})


@schedules_bp.route('/api/schedule-instances', methods=['GET'])
@permission_required('schedules.read')
def list_instances():
    with get_db_session() as db:
        instances = _repo(db).list_instances(
            status=request.args.get('status'),
            date_from=arg_date('date_from'),
            date_to=arg_date('date_to')
        )
        return jsonify({'success': True, 'instances': instances})


@schedules_bp.route('/api/schedule-instances/<instance_id>', methods=['PUT'])
@permission_required('schedules.status')
def update_instance(instance_id):
    with get_db_session() as db:
        instance = _repo(db).update_instance(instance_id, get_json_body())
    return jsonify({'success': True, 'instance': instance})
