"""
Invoice Routes Blueprint

- /api/invoices: list, create (manual)
- /api/invoices/summaries: billing totals per customer
- /api/invoices/<id>: get, update, delete
- /api/invoices/<id>/payments: record a payment
- /api/invoices/<id>/cancel: cancel
- /api/invoices/<id>/pdf: PDF document
- /api/invoices/<id>/send: email (default) or SMS the invoice
- /api/schedules/<id>/invoice: invoice a completed service
"""

import io
import logging
from flask import Blueprint, request, jsonify, send_file

from auth import permission_required, current_user_id
from database.connection import get_db_session
from services.errors import ProviderError
from services.invoice_repository import InvoiceRepository
from services.messaging_service import MessagingService
from services.pdf_service import build_invoice_pdf
from app.utils.helpers import get_json_body, get_settings_from_app, list_args
from validators import ValidationError

logger = logging.getLogger(__name__)

# Create blueprint
invoices_bp = Blueprint('invoices_bp', __name__)


def _repo(db):
    return InvoiceRepository(db, current_user_id(), get_settings_from_app())


# ============================================================================
# QUERIES
# ============================================================================

@invoices_bp.route('/api/invoices', methods=['GET'])
@permission_required('invoices.read')
def list_invoices():
    """Query: search, status, customer_id, sort (invoice_date by default), order."""
    with get_db_session() as db:
        invoices = _repo(db).list_invoices(customer_id=request.args.get('customer_id'), **list_args())
        return jsonify({'success': True, 'invoices': invoices, 'count': len(invoices)})


@invoices_bp.route('/api/invoices/summaries', methods=['GET'])
@permission_required('invoices.read')
def get_invoice_summaries():
    with get_db_session() as db:
        return jsonify({'success': True, 'summaries': _repo(db).get_invoice_summaries()})


@invoices_bp.route('/api/invoices/<invoice_id>', methods=['GET'])
@permission_required('invoices.read')
def get_invoice(invoice_id):
    with get_db_session() as db:
        return jsonify({'success': True, 'invoice': _repo(db).get_invoice(invoice_id)})


@invoices_bp.route('/api/invoices/<invoice_id>/pdf', methods=['GET'])
@permission_required('invoices.read')
def get_invoice_pdf(invoice_id):
    with get_db_session() as db:
        invoice = _repo(db).get_invoice(invoice_id)
    pdf = build_invoice_pdf(invoice, get_settings_from_app())
    return send_file(
        io.BytesIO(pdf),
        mimetype='application/pdf',
        as_attachment=request.args.get('download') == '1',
        download_name=f"invoice-{invoice['invoice_number']}.pdf"
    )


# ============================================================================
# WRITES
# ============================================================================

@invoices_bp.route('/api/invoices', methods=['POST'])
@permission_required('invoices.write')
def create_invoice():
    with get_db_session() as db:
        invoice = _repo(db).create_invoice(get_json_body())
    return jsonify({'success': True, 'invoice': invoice, 'message': 'Invoice created successfully'}), 201


@invoices_bp.route('/api/schedules/<schedule_id>/invoice', methods=['POST'])
@permission_required('invoices.write')
def create_invoice_from_schedule(schedule_id):
    """
    Invoice a completed service.

    Body (optional): due_date, tax_rate, tax_exempt, notes, send_sms.
    A failed SMS notification does not undo the invoice; it is reported as a warning.
    """
    data = get_json_body()
    with get_db_session() as db:
        invoice = _repo(db).create_invoice_from_schedule(schedule_id, data)

    response = {'success': True, 'invoice': invoice, 'message': 'Invoice created successfully'}
    if data.get('send_sms'):
        try:
            with get_db_session() as db:
                MessagingService(db, current_user_id(), get_settings_from_app()).send_invoice_sms(invoice['id'])
            response['sms_sent'] = True
        except (ProviderError, ValidationError) as e:
            logger.warning(f"Invoice {invoice['invoice_number']} created but SMS failed: {e.message}")
            response['sms_sent'] = False
            response['warning'] = f"Invoice created but SMS notification failed: {e.message}"
    return jsonify(response), 201


@invoices_bp.route('/api/invoices/<invoice_id>', methods=['PUT'])
@permission_required('invoices.write')
def update_invoice(invoice_id):
    with get_db_session() as db:
        invoice = _repo(db).update_invoice(invoice_id, get_json_body())
    return jsonify({'success': True, 'invoice': invoice})


@invoices_bp.route('/api/invoices/<invoice_id>/payments', methods=['POST'])
@permission_required('invoices.write')
def record_payment(invoice_id):
    """Body: amount, payment_method (credit_card|bank_transfer|cash|check), payment_date."""
    data = get_json_body()
    with get_db_session() as db:
        invoice = _repo(db).record_payment(
            invoice_id, data.get('amount'), data.get('payment_method'), data.get('payment_date')
        )
    return jsonify({'success': True, 'invoice': invoice, 'message': 'Payment recorded successfully'})


@invoices_bp.route('/api/invoices/<invoice_id>/cancel', methods=['POST'])
@permission_required('invoices.write')
def cancel_invoice(invoice_id):
    with get_db_session() as db:
        invoice = _repo(db).cancel_invoice(invoice_id)
    return jsonify({'success': True, 'invoice': invoice})


@invoices_bp.route('/api/invoices/<invoice_id>', methods=['DELETE'])
@permission_required('invoices.write')
def delete_invoice(invoice_id):
    with get_db_session() as db:
        _repo(db).delete_invoice(invoice_id)
    return jsonify({'success': True})


@invoices_bp.route('/api/invoices/<invoice_id>/send', methods=['POST'])
@permission_required('invoices.write')
def send_invoice(invoice_id):
    """Body: {"channel": "email" | "sms"}. A failed delivery is kept in the message history."""
    channel = get_json_body().get('channel', 'email')
    if channel not in ('email', 'sms'):
        raise ValidationError('Channel must be email or sms', 'channel')

    error = None
    with get_db_session() as db:
        service = MessagingService(db, current_user_id(), get_settings_from_app())
        try:
            if channel == 'email':
                message = service.send_invoice(invoice_id)
            else:
                message = service.send_invoice_sms(invoice_id)
        except ProviderError as e:
            error = e

    if error:
        return jsonify({'success': False, 'error': error.message}), error.status_code
    return jsonify({'success': True, 'message': message})
