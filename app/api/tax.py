"""
Tax Routes Blueprint

- /api/tax-configurations: list (read), create (admin)
- /api/tax-configurations/<id>: get, update (admin), delete (admin)
- /api/tax/calculate: tax for an amount
"""

import logging
from flask import Blueprint, jsonify

from auth import permission_required, current_user_id
from database.connection import get_db_session
from services.tax_service import TaxService
from app.utils.helpers import get_json_body

logger = logging.getLogger(__name__)

# Create blueprint
tax_bp = Blueprint('tax_bp', __name__)


@tax_bp.route('/api/tax-configurations', methods=['GET'])
@permission_required('tax.read')
def list_tax_configurations():
    with get_db_session() as db:
        return jsonify({'success': True, 'configurations': TaxService(db).list_configurations()})


@tax_bp.route('/api/tax-configurations/<config_id>', methods=['GET'])
@permission_required('tax.read')
def get_tax_configuration(config_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'configuration': TaxService(db).get_configuration(config_id)})


@tax_bp.route('/api/tax-configurations', methods=['POST'])
@permission_required('tax.write')
def create_tax_configuration():
    with get_db_session() as db:
        config = TaxService(db, current_user_id()).create_configuration(get_json_body())
    return jsonify({'success': True, 'configuration': config}), 201


@tax_bp.route('/api/tax-configurations/<config_id>', methods=['PUT'])
@permission_required('tax.write')
def update_tax_configuration(config_id):
    with get_db_session() as db:
        config = TaxService(db, current_user_id()).update_configuration(config_id, get_json_body())
    return jsonify({'success': True, 'configuration': config})


@tax_bp.route('/api/tax-configurations/<config_id>', methods=['DELETE'])
@permission_required('tax.write')
def delete_tax_configuration(config_id):
    with get_db_session() as db:
        TaxService(db, current_user_id()).delete_configuration(config_id)
    return jsonify({'success': True})


@tax_bp.route('/api/tax/calculate', methods=['POST'])
@permission_required('invoices.read')
def calculate_tax():
    """Body: base_amount, tax_rate (optional fraction), config_id (optional)."""
    data = get_json_body()
    with get_db_session() as db:
        result = TaxService(db).calculate_tax(data.get('base_amount'), data.get('tax_rate'), data.get('config_id'))
    return jsonify({'success': True, **result})
