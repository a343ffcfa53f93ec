"""
Dashboard & Activity Routes Blueprint

- /api/dashboard: metrics, upcoming services, recent invoices, estimate pipeline
- /api/activity/recent: recent audit events
- /api/activity/summary: event counts over a period
- /api/activity/<entity_type>/<entity_id>: history of one record
"""

import logging
from flask import Blueprint, request, jsonify

from auth import login_required
from database.connection import get_db_session
from services.dashboard_service import DashboardService
from services.event_logger import get_event_logger
from app.utils.helpers import arg_int

logger = logging.getLogger(__name__)

# Create blueprint
dashboard_bp = Blueprint('dashboard_bp', __name__)


# ============================================================================
# DASHBOARD
# ============================================================================

@dashboard_bp.route('/api/dashboard', methods=['GET'])
@login_required
def get_dashboard():
    with get_db_session() as db:
        return jsonify({'success': True, **DashboardService(db).get_dashboard()})


@dashboard_bp.route('/api/dashboard/metrics', methods=['GET'])
@login_required
def get_dashboard_metrics():
    with get_db_session() as db:
        return jsonify({'success': True, 'metrics': DashboardService(db).get_metrics()})


# ============================================================================
# ACTIVITY
# ============================================================================

@dashboard_bp.route('/api/activity/recent', methods=['GET'])
@login_required
def get_recent_activity():
    """Query: hours (24), limit (50), entity_type, event_type."""
    entity_type = request.args.get('entity_type')
    event_type = request.args.get('event_type')
    with get_db_session() as db:
        events = get_event_logger(db).get_recent_events(
            hours=arg_int('hours', 24, maximum=24 * 90),
            event_types=[event_type] if event_type else None,
            entity_types=[entity_type] if entity_type else None,
            limit=arg_int('limit', 50, maximum=500)
        )
        return jsonify({'success': True, 'events': events})


@dashboard_bp.route('/api/activity/summary', methods=['GET'])
@login_required
def get_activity_summary():
    with get_db_session() as db:
        summary = get_event_logger(db).get_activity_summary(days=arg_int('days', 7, maximum=365))
        return jsonify({'success': True, 'summary': summary})


@dashboard_bp.route('/api/activity/<entity_type>/<entity_id>', methods=['GET'])
@login_required
def get_entity_history(entity_type, entity_id):
    with get_db_session() as db:
        history = get_event_logger(db).get_entity_history(entity_type, entity_id,
                                                          limit=arg_int('limit', 50, maximum=500))
        return jsonify({'success': True, 'events': history})
