"""
Customer & Property Routes Blueprint

- /api/customers: list, create
- /api/customers/<id>: get, update, delete (admin)
- /api/customers/<id>/properties: properties of a customer
- /api/properties: list, create
- /api/properties/<id>: get, update, delete (admin)
- /api/properties/<id>/history: service history of a property
"""

import logging
from flask import Blueprint, request, jsonify

from auth import permission_required, current_user_id
from database.connection import get_db_session
from services.customer_repository import CustomerRepository
from app.utils.helpers import get_json_body, list_args

logger = logging.getLogger(__name__)

# Create blueprint
customers_bp = Blueprint('customers_bp', __name__)


# ============================================================================
# CUSTOMERS
# ============================================================================

@customers_bp.route('/api/customers', methods=['GET'])
@permission_required('customers.read')
def list_customers():
    """List customers. Query: search, status, sort (name|total_spent|properties|last_service), order."""
    with get_db_session() as db:
        customers = CustomerRepository(db).list_customers(**list_args())
        return jsonify({'success': True, 'customers': customers, 'count': len(customers)})


@customers_bp.route('/api/customers/<customer_id>', methods=['GET'])
@permission_required('customers.read')
def get_customer(customer_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'customer': CustomerRepository(db).get_customer(customer_id)})


@customers_bp.route('/api/customers', methods=['POST'])
@permission_required('customers.write')
def create_customer():
    """Create a customer; the billing address becomes the first property."""
    with get_db_session() as db:
        customer = CustomerRepository(db, current_user_id()).create_customer(get_json_body())
    return jsonify({'success': True, 'customer': customer, 'message': 'Customer created successfully'}), 201


@customers_bp.route('/api/customers/<customer_id>', methods=['PUT'])
@permission_required('customers.write')
def update_customer(customer_id):
    with get_db_session() as db:
        customer = CustomerRepository(db, current_user_id()).update_customer(customer_id, get_json_body())
    return jsonify({'success': True, 'customer': customer, 'message': 'Customer updated successfully'})


@customers_bp.route('/api/customers/<customer_id>', methods=['DELETE'])
@permission_required('customers.delete')
def delete_customer(customer_id):
    with get_db_session() as db:
        CustomerRepository(db, current_user_id()).delete_customer(customer_id)
    return jsonify({'success': True, 'message': 'Customer deleted successfully'})


@customers_bp.route('/api/customers/<customer_id>/properties', methods=['GET'])
@permission_required('customers.read')
def list_customer_properties(customer_id):
    with get_db_session() as db:
        repo = CustomerRepository(db)
        repo.get_customer(customer_id)
        properties = repo.list_properties(customer_id=customer_id, search=request.args.get('search'))
        return jsonify({'success': True, 'properties': properties})


# ============================================================================
# PROPERTIES
# ============================================================================

@customers_bp.route('/api/properties', methods=['GET'])
@permission_required('customers.read')
def list_properties():
    with get_db_session() as db:
        properties = CustomerRepository(db).list_properties(
            customer_id=request.args.get('customer_id'),
            search=request.args.get('search')
        )
        return jsonify({'success': True, 'properties': properties, 'count': len(properties)})


@customers_bp.route('/api/properties/<property_id>', methods=['GET'])
@permission_required('customers.read')
def get_property(property_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'property': CustomerRepository(db).get_property(property_id)})


@customers_bp.route('/api/properties', methods=['POST'])
@permission_required('customers.write')
def create_property():
    with get_db_session() as db:
        prop = CustomerRepository(db, current_user_id()).create_property(get_json_body())
    return jsonify({'success': True, 'property': prop, 'message': 'Property created successfully'}), 201


@customers_bp.route('/api/properties/<property_id>', methods=['PUT'])
@permission_required('customers.write')
def update_property(property_id):
    with get_db_session() as db:
        prop = CustomerRepository(db, current_user_id()).update_property(property_id, get_json_body())
    return jsonify({'success': True, 'property': prop, 'message': 'Property updated successfully'})


@customers_bp.route('/api/properties/<property_id>', methods=['DELETE'])
@permission_required('customers.delete')
def delete_property(property_id):
    with get_db_session() as db:
        CustomerRepository(db, current_user_id()).delete_property(property_id)
    return jsonify({'success': True, 'message': 'Property deleted successfully'})


@customers_bp.route('/api/properties/<property_id>/history', methods=['GET'])
@permission_required('schedules.read')
def get_property_history(property_id):
    with get_db_session() as db:
        history = CustomerRepository(db).get_property_service_history(property_id)
        return jsonify({'success': True, 'history': history})
