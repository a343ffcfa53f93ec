"""
Messaging Routes Blueprint

- /api/messages: message history (box=inbox|sent|all, search)
- /api/messages/<id>: one message with its recipients
- /api/messages/send: compose to customers by email and/or SMS
- /api/message-logs: raw provider delivery attempts
- /api/message-providers: provider settings (admin)
"""

import logging
from flask import Blueprint, request, jsonify

from auth import permission_required, admin_required, current_user_id
from database.connection import get_db_session
from services.messaging_service import MessagingService
from app.utils.helpers import get_json_body, get_settings_from_app, arg_int

logger = logging.getLogger(__name__)

# Create blueprint
messages_bp = Blueprint('messages_bp', __name__)


def _service(db):
    return MessagingService(db, current_user_id(), get_settings_from_app())


@messages_bp.route('/api/messages', methods=['GET'])
@permission_required('messages.read')
def list_messages():
    with get_db_session() as db:
        messages = _service(db).list_messages(request.args.get('box', 'all'), request.args.get('search'))
        return jsonify({'success': True, 'messages': messages})


@messages_bp.route('/api/messages/<message_id>', methods=['GET'])
@permission_required('messages.read')
def get_message(message_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'message': _service(db).get_message(message_id)})


@messages_bp.route('/api/messages/send', methods=['POST'])
@permission_required('messages.send')
def send_message():
    """
    Body: recipients (customer ids), subject, message, send_email (default true), send_sms.

    Per-recipient failures are recorded on the message; the request only fails
    when validation fails.
    """
    data = get_json_body()
    with get_db_session() as db:
        results = _service(db).send_custom_message(
            data.get('recipients') or [],
            data.get('subject'),
            data.get('message'),
            send_email=bool(data.get('send_email', True)),
            send_sms=bool(data.get('send_sms', False))
        )
    delivered = any(result['status'] == 'sent' for result in results.values())
    return jsonify({
        'success': delivered,
        'results': results,
        'message': 'Message sent successfully' if delivered else 'Message could not be delivered'
    })


@messages_bp.route('/api/message-logs', methods=['GET'])
@permission_required('messages.read')
def list_message_logs():
    with get_db_session() as db:
        logs = _service(db).list_logs(limit=arg_int('limit', 100, maximum=500))
        return jsonify({'success': True, 'logs': logs})


@messages_bp.route('/api/message-providers', methods=['GET'])
@admin_required
def list_message_providers():
    with get_db_session() as db:
        return jsonify({'success': True, 'providers': _service(db).list_providers()})


@messages_bp.route('/api/message-providers', methods=['POST'])
@admin_required
def create_message_provider():
    with get_db_session() as db:
        provider = _service(db).save_provider(get_json_body())
    return jsonify({'success': True, 'provider': provider}), 201


@messages_bp.route('/api/message-providers/<provider_id>', methods=['PUT'])
@admin_required
def update_message_provider(provider_id):
    with get_db_session() as db:
        provider = _service(db).save_provider(get_json_body(), provider_id)
    return jsonify({'success': True, 'provider': provider})
