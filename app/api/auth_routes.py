"""
Authentication Routes Blueprint

Handles login/logout, the current user's profile, and staff account management.
"""

import logging
from flask import Blueprint, jsonify

import auth
from database.connection import get_db_session
from app.utils.helpers import get_json_body

logger = logging.getLogger(__name__)

# Create blueprint
auth_bp = Blueprint('auth_bp', __name__)


def _user_payload(user):
    data = user.to_dict()
    data['permissions'] = auth.get_permissions(user.role)
    return data


# ============================================================================
# LOGIN/LOGOUT ROUTES
# ============================================================================

@auth_bp.route('/api/auth/login', methods=['POST'])
def api_login():
    """API endpoint for user login"""
    data = get_json_body()
    email = data.get('email')
    password = data.get('password')

    if not email or not password:
        return jsonify({'success': False, 'error': 'Email and password required'}), 400

    with get_db_session() as db:
        user, error = auth.authenticate_user(db, email, password)
        if error:
            return jsonify({'success': False, 'error': error}), 401

        auth.login_user(user)
        return jsonify({'success': True, 'user': _user_payload(user)})


@auth_bp.route('/api/auth/logout', methods=['POST'])
def api_logout():
    """API endpoint for user logout"""
    auth.logout_user()
    return jsonify({'success': True})


@auth_bp.route('/api/auth/current-user', methods=['GET'])
@auth_bp.route('/api/auth/me', methods=['GET'])
@auth.login_required
def get_current_user_api():
    """Get current logged-in user info"""
    with get_db_session() as db:
        user = auth.get_current_user(db)
        if not user or not user.is_active:
            auth.logout_user()
            return jsonify({'success': False, 'error': 'Not authenticated'}), 401
        return jsonify({'success': True, 'user': _user_payload(user)})


@auth_bp.route('/api/auth/profile', methods=['PUT'])
@auth.login_required
def update_profile_api():
    """Body: full_name, current_password + new_password."""
    with get_db_session() as db:
        user = auth.update_profile(db, auth.current_user_id(), get_json_body())
        if not user:
            return jsonify({'success': False, 'error': 'User not found'}), 404
        return jsonify({'success': True, 'user': _user_payload(user)})


# ============================================================================
# USER MANAGEMENT API (Admin only)
# ============================================================================

@auth_bp.route('/api/auth/users', methods=['GET'])
@auth.admin_required
def get_users():
    """Get all users (admin only)"""
    with get_db_session() as db:
        return jsonify({'success': True, 'users': auth.list_users(db)})


@auth_bp.route('/api/auth/users', methods=['POST'])
@auth.admin_required
def create_user_api():
    """Create new user (admin only)"""
    data = get_json_body()
    with get_db_session() as db:
        user = auth.create_user(
            db,
            data.get('email'),
            data.get('password'),
            data.get('full_name'),
            data.get('role', 'office_staff')
        )
        return jsonify({'success': True, 'user': user.to_dict()}), 201


@auth_bp.route('/api/auth/users/<user_id>', methods=['PUT'])
@auth.admin_required
def update_user_api(user_id):
    """Update role, name, active flag or reset the password (admin only)"""
    data = get_json_body()
    if user_id == auth.current_user_id() and (data.get('is_active') is False or data.get('role', 'admin') != 'admin'):
        return jsonify({'success': False, 'error': 'You cannot demote or deactivate your own account'}), 400

    with get_db_session() as db:
        user = auth.update_user(db, user_id, data)
        if not user:
            return jsonify({'success': False, 'error': 'User not found'}), 404
        return jsonify({'success': True, 'user': user.to_dict()})


@auth_bp.route('/api/auth/permissions', methods=['GET'])
@auth.login_required
def get_permissions():
    """Available permissions, role definitions and the caller's own permissions"""
    return jsonify({
        'success': True,
        'permissions': auth.PERMISSIONS,
        'roles': auth.ROLES,
        'current': auth.get_permissions()
    })
