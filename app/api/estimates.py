"""
Estimate Routes Blueprint

- /api/estimates: list, create
- /api/estimates/<id>: get, update, delete
- /api/estimates/<id>/status: status change
- /api/estimates/<id>/pdf: PDF document
- /api/estimates/<id>/send: email (with PDF) or SMS the estimate
"""

import io
import logging
from flask import Blueprint, request, jsonify, send_file

from auth import permission_required, current_user_id
from database.connection import get_db_session
from services.errors import ProviderError
from services.estimate_repository import EstimateRepository
from services.messaging_service import MessagingService
from services.pdf_service import build_estimate_pdf
from app.utils.helpers import get_json_body, get_settings_from_app, list_args

logger = logging.getLogger(__name__)

# Create blueprint
estimates_bp = Blueprint('estimates_bp', __name__)


def _repo(db):
    return EstimateRepository(db, current_user_id(), get_settings_from_app())


@estimates_bp.route('/api/estimates', methods=['GET'])
@permission_required('estimates.read')
def list_estimates():
    with get_db_session() as db:
        estimates = _repo(db).list_estimates(customer_id=request.args.get('customer_id'), **list_args())
        return jsonify({'success': True, 'estimates': estimates, 'count': len(estimates)})


@estimates_bp.route('/api/estimates/<estimate_id>', methods=['GET'])
@permission_required('estimates.read')
def get_estimate(estimate_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'estimate': _repo(db).get_estimate(estimate_id)})


@estimates_bp.route('/api/estimates', methods=['POST'])
@permission_required('estimates.write')
def create_estimate():
    with get_db_session() as db:
        estimate = _repo(db).create_estimate(get_json_body())
    return jsonify({'success': True, 'estimate': estimate, 'message': 'Estimate created successfully'}), 201


@estimates_bp.route('/api/estimates/<estimate_id>', methods=['PUT'])
@permission_required('estimates.write')
def update_estimate(estimate_id):
    with get_db_session() as db:
        estimate = _repo(db).update_estimate(estimate_id, get_json_body())
    return jsonify({'success': True, 'estimate': estimate})


@estimates_bp.route('/api/estimates/<estimate_id>/status', methods=['PUT'])
@permission_required('estimates.write')
def update_estimate_status(estimate_id):
    with get_db_session() as db:
        estimate = _repo(db).update_status(estimate_id, get_json_body().get('status'))
    return jsonify({'success': True, 'estimate': estimate})


@estimates_bp.route('/api/estimates/<estimate_id>', methods=['DELETE'])
@permission_required('estimates.write')
def delete_estimate(estimate_id):
    with get_db_session() as db:
        _repo(db).delete_estimate(estimate_id)
    return jsonify({'success': True})


@estimates_bp.route('/api/estimates/<estimate_id>/pdf', methods=['GET'])
@permission_required('estimates.read')
def get_estimate_pdf(estimate_id):
    with get_db_session() as db:
        estimate = _repo(db).get_estimate(estimate_id)
    pdf = build_estimate_pdf(estimate, get_settings_from_app())
    return send_file(
        io.BytesIO(pdf),
        mimetype='application/pdf',
        as_attachment=request.args.get('download') == '1',
        download_name=f"estimate-{estimate['id'][:8]}.pdf"
    )


@estimates_bp.route('/api/estimates/<estimate_id>/send', methods=['POST'])
@permission_required('estimates.write')
def send_estimate(estimate_id):
    """Body: {"channel": "email" | "sms"}. Draft estimates become sent once delivered."""
    channel = get_json_body().get('channel', 'email')

    error = None
    with get_db_session() as db:
        try:
            message = MessagingService(db, current_user_id(), get_settings_from_app()).send_estimate(
                estimate_id, channel
            )
        except ProviderError as e:
            error = e

    if error:
        return jsonify({'success': False, 'error': error.message}), error.status_code
    return jsonify({'success': True, 'message': message})
