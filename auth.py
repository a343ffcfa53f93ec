"""
User Authentication and Authorization Module
Handles staff login, session management, and role-based permissions.

Accounts live in user_profiles (email + password). The Flask session holds
the user id and role; every permission check resolves against ROLES.
"""
import logging
from datetime import datetime
from functools import wraps

from flask import session, jsonify
from werkzeug.security import generate_password_hash, check_password_hash

from database.models import UserProfile
from validators import ValidationError, validate_email

logger = logging.getLogger(__name__)


def hash_password(password):
    """Generate password hash using pbkdf2"""
    return generate_password_hash(password, method='pbkdf2:sha256')


# Available permissions
PERMISSIONS = {
    'customers.read': 'View customers and properties',
    'customers.write': 'Add and edit customers and properties',
    'customers.delete': 'Delete customers and properties',
    'crews.read': 'View technicians and crews',
    'crews.write': 'Manage technicians and crews',
    'schedules.read': 'View service schedules',
    'schedules.write': 'Create and edit service schedules',
    'schedules.status': 'Update service status',
    'estimates.read': 'View estimates',
    'estimates.write': 'Create, edit and send estimates',
    'invoices.read': 'View invoices',
    'invoices.write': 'Create invoices and record payments',
    'messages.read': 'View messages',
    'messages.send': 'Send email and SMS',
    'tax.read': 'View tax configurations',
    'tax.write': 'Manage tax configurations',
    'users.manage': 'Manage staff accounts',
    'scheduler.run': 'Run background jobs',
}

_READ_PERMISSIONS = [p for p in PERMISSIONS if p.endswith('.read')]

# Predefined roles
ROLES = {
    'admin': {
        'name': 'Administrator',
        'permissions': list(PERMISSIONS.keys())
    },
    'office_staff': {
        'name': 'Office Staff',
        'permissions': [
            p for p in PERMISSIONS
            if p not in ('customers.delete', 'tax.write', 'users.manage', 'scheduler.run')
        ]
    },
    'technician': {
        'name': 'Technician',
        'permissions': _READ_PERMISSIONS + ['schedules.status']
    }
}


# ============================================================================
# ACCOUNTS
# ============================================================================

def get_user_by_email(db, email):
    if not email:
        return None
    return db.query(UserProfile).filter(UserProfile.email == email.strip().lower()).first()


def authenticate_user(db, email, password):
    """
    Check credentials.

    Returns:
        (UserProfile, None) on success, (None, error message) otherwise
    """
    user = get_user_by_email(db, email)
    if not user or not check_password_hash(user.password_hash, password or ''):
        logger.warning(f"Failed login attempt for {email}")
        return None, "Invalid email or password"

    if not user.is_active:
        return None, "Account is deactivated"

    user.last_login = datetime.utcnow()
    db.flush()
    logger.info(f"User authenticated: {user.email}")
    return user, None


def list_users(db):
    return [u.to_dict() for u in db.query(UserProfile).order_by(UserProfile.email).all()]


def create_user(db, email, password, full_name=None, role='office_staff'):
    """Create a staff account (admin only at the route level)."""
    is_valid, error = validate_email(email or '')
    if not is_valid:
        raise ValidationError(error, 'email')
    if not password or len(password) < 8:
        raise ValidationError('Password must be at least 8 characters', 'password')
    if role not in ROLES:
        raise ValidationError('Invalid role', 'role')
    if get_user_by_email(db, email):
        raise ValidationError('A user with this email already exists', 'email')

    user = UserProfile(
        email=email.strip().lower(),
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
        is_active=True
    )
    db.add(user)
    db.flush()
    logger.info(f"Created user: {user.email} ({role})")
    return user


def update_user(db, user_id, data):
    """Admin edit of another account: name, role, active flag and password reset."""
    user = db.get(UserProfile, user_id)
    if not user:
        return None

    if 'role' in data:
        if data['role'] not in ROLES:
            raise ValidationError('Invalid role', 'role')
        user.role = data['role']
    if 'full_name' in data:
        user.full_name = data['full_name']
    if 'is_active' in data:
        user.is_active = bool(data['is_active'])
    if data.get('password'):
        if len(data['password']) < 8:
            raise ValidationError('Password must be at least 8 characters', 'password')
        user.password_hash = hash_password(data['password'])

    user.updated_at = datetime.utcnow()
    db.flush()
    logger.info(f"Updated user: {user.email}")
    return user


def update_profile(db, user_id, data):
    """Self-service profile update. Changing the password needs the current one."""
    user = db.get(UserProfile, user_id)
    if not user:
        return None

    if 'full_name' in data:
        user.full_name = (data['full_name'] or '').strip() or None
    if data.get('new_password'):
        if not check_password_hash(user.password_hash, data.get('current_password') or ''):
            raise ValidationError('Current password is incorrect', 'current_password')
        if len(data['new_password']) < 8:
            raise ValidationError('Password must be at least 8 characters', 'new_password')
        user.password_hash = hash_password(data['new_password'])

    user.updated_at = datetime.utcnow()
    db.flush()
    return user


# ============================================================================
# SESSION
# ============================================================================

def login_user(user):
    """Set user session"""
    session['user_id'] = user.id
    session['user_email'] = user.email
    session['user_role'] = user.role
    session.permanent = True


def logout_user():
    """Clear user session"""
    session.clear()


def current_user_id():
    return session.get('user_id')


def get_current_user(db):
    user_id = current_user_id()
    return db.get(UserProfile, user_id) if user_id else None


def is_authenticated():
    return 'user_id' in session


def get_permissions(role=None):
    role = role or session.get('user_role')
    return ROLES.get(role, {}).get('permissions', [])


def has_permission(permission):
    """Check if current user has a specific permission"""
    if not is_authenticated():
        return False
    return permission in get_permissions()


def is_admin():
    return is_authenticated() and session.get('user_role') == 'admin'


# Decorators for route protection
def login_required(f):
    """Decorator to require login for a route"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def permission_required(permission):
    """Decorator to require specific permission for a route"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not is_authenticated():
                return jsonify({'success': False, 'error': 'Authentication required'}), 401
            if not has_permission(permission):
                return jsonify({'success': False, 'error': 'Permission denied', 'required': permission}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def admin_required(f):
    """Decorator to require the admin role"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        if not is_admin():
            return jsonify({'success': False, 'error': 'Admin permission required'}), 403
        return f(*args, **kwargs)
    return decorated_function
