"""
Invoice Repository - Invoices, line items, payments and overdue tracking.

Balance and status follow the billing rules the dashboard relies on:
balance = total - amount_paid; a settled invoice becomes 'paid'; an unpaid
invoice past its due date becomes 'overdue'. Paid and cancelled invoices are
never changed by those rules.
"""

import logging
import random
from datetime import datetime, date, timedelta
from typing import List, Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.utils.formatters import format_currency, format_date
from config import get_settings
from database.models import Customer, Invoice, InvoiceItem, ServiceSchedule, Property
from services.errors import NotFoundError, ServiceError
from services.event_logger import get_event_logger
from services.list_query import filter_records, sort_records
from services.tax_service import TaxService, calculate_line_item, sum_line_items, round_money
from validators import ValidationError, parse_date, parse_number

logger = logging.getLogger(__name__)

INVOICE_STATUSES = {'draft', 'pending', 'sent', 'paid', 'overdue', 'cancelled'}
PAYMENT_METHODS = {'credit_card', 'bank_transfer', 'cash', 'check'}
CLOSED_STATUSES = {'paid', 'cancelled'}

INVOICE_NUMBER_ATTEMPTS = 10

INVOICE_SEARCH_FIELDS = ['invoice_number', 'customer.full_name', 'customer.email', 'property.full_address']


def generate_invoice_number(invoice_date: date = None) -> str:
    """YYYYMMDD-NNN with a random three digit suffix."""
    invoice_date = invoice_date or date.today()
    return f"{invoice_date:%Y%m%d}-{random.randint(0, 999):03d}"


def refresh_status(invoice: Invoice, today: date = None) -> str:
    """Recalculate the balance and derive paid/overdue. Returns the resulting status."""
    today = today or date.today()
    invoice.balance = round_money((invoice.total or 0) - (invoice.amount_paid or 0))

    if invoice.status == 'cancelled':
        return invoice.status
    if invoice.balance <= 0:
        invoice.status = 'paid'
    elif invoice.due_date and invoice.due_date < today and invoice.status not in CLOSED_STATUSES:
        invoice.status = 'overdue'
    return invoice.status


class InvoiceRepository:
    """Repository for invoices and payments."""

    def __init__(self, session: Session, user_id: str = None, settings: Dict[str, Any] = None):
        self.session = session
        self.user_id = user_id
        self.settings = settings if settings is not None else get_settings()
        self.events = get_event_logger(session, user_id)
        self.tax = TaxService(session, user_id)

    def _get(self, invoice_id: str) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError('invoice', invoice_id)
        return invoice

    def _next_invoice_number(self, invoice_date: date) -> str:
        for _ in range(INVOICE_NUMBER_ATTEMPTS):
            number = generate_invoice_number(invoice_date)
            taken = self.session.query(Invoice.id).filter(Invoice.invoice_number == number).first()
            if not taken:
                return number
        raise ServiceError(f"Could not allocate an invoice number for {invoice_date:%Y-%m-%d}")

    def _due_date(self, data: Dict, invoice_date: date, customer: Customer) -> date:
        due_date = parse_date(data.get('due_date'), 'due_date')
        if due_date:
            if due_date < invoice_date:
                raise ValidationError('Due date cannot be before the invoice date', 'due_date')
            return due_date
        terms = customer.payment_terms if customer.payment_terms is not None \
            else self.settings.get('DEFAULT_PAYMENT_TERMS', 30)
        return invoice_date + timedelta(days=terms)

    def _service_tax_rate(self, schedule: ServiceSchedule, data: Dict) -> float:
        """Explicit rate, else the service type's own rate, else the configured default."""
        if data.get('tax_rate') not in (None, ''):
            return self.tax.resolve_rate(data['tax_rate'])
        if schedule.service_type and schedule.service_type.tax_rate is not None:
            return float(schedule.service_type.tax_rate)
        return self.tax.resolve_rate()

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_invoices(self, status: str = None, customer_id: str = None, search: str = None,
                      sort_field: str = 'invoice_date', sort_order: str = 'desc') -> List[Dict]:
        query = self.session.query(Invoice)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        records = [i.to_dict(include_items=False) for i in query.all()]
        records = filter_records(records, search, INVOICE_SEARCH_FIELDS, {'status': status})
        return sort_records(records, sort_field, sort_order)

    def get_invoice(self, invoice_id: str) -> Dict:
        invoice = self._get(invoice_id)
        data = invoice.to_dict()
        data['schedule'] = invoice.schedule.to_dict(include_related=False) if invoice.schedule else None
        return data

    def get_invoice_summaries(self) -> List[Dict]:
        """Per customer billing totals (customers without invoices included)."""
        rows = self.session.query(
            Customer.id,
            Customer.first_name,
            Customer.last_name,
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total), 0),
            func.coalesce(func.sum(Invoice.amount_paid), 0),
            func.coalesce(func.sum(Invoice.balance), 0)
        ).outerjoin(Invoice, Invoice.customer_id == Customer.id).group_by(
            Customer.id, Customer.first_name, Customer.last_name
        ).order_by(Customer.last_name, Customer.first_name).all()

        pending = dict(self.session.query(Invoice.customer_id, func.count(Invoice.id)).filter(
            Invoice.status == 'pending'
        ).group_by(Invoice.customer_id).all())

        next_due = dict(self.session.query(Invoice.customer_id, func.min(Invoice.due_date)).filter(
            Invoice.status.notin_(CLOSED_STATUSES)
        ).group_by(Invoice.customer_id).all())

        summaries = []
        for customer_id, first_name, last_name, count, billed, paid, outstanding in rows:
            due = next_due.get(customer_id)
            summaries.append({
                'customer_id': customer_id,
                'customer_name': f"{first_name} {last_name}",
                'total_invoices': count,
                'pending_invoices': pending.get(customer_id, 0),
                'total_billed': round_money(billed),
                'total_paid': round_money(paid),
                'total_outstanding': round_money(outstanding),
                'next_due_date': due.isoformat() if due else None
            })
        return summaries

    # =========================================================================
    # CREATION
    # =========================================================================

    def create_invoice_from_schedule(self, schedule_id: str, data: Dict = None) -> Dict:
        """Invoice a completed service. A service can only be invoiced once."""
        data = data or {}
        schedule = self.session.get(ServiceSchedule, schedule_id)
        if not schedule:
            raise NotFoundError('service_schedule', schedule_id)
        if schedule.status != 'completed':
            raise ValidationError('Only completed services can be invoiced', 'service_schedule_id')
        if schedule.invoice_id:
            raise ValidationError('This service has already been invoiced', 'service_schedule_id')

        customer = schedule.property.customer
        tax_exempt = bool(data.get('tax_exempt', customer.tax_exempt))
        rate = 0.0 if tax_exempt else self._service_tax_rate(schedule, data)
        line = calculate_line_item(1, schedule.effective_price, rate)

        invoice_date = parse_date(data.get('invoice_date'), 'invoice_date') or date.today()
        invoice = Invoice(
            invoice_number=self._next_invoice_number(invoice_date),
            customer=customer,
            property_id=schedule.property_id,
            service_schedule_id=schedule.id,
            invoice_date=invoice_date,
            due_date=self._due_date(data, invoice_date, customer),
            subtotal=line['subtotal'],
            tax_amount=line['tax_amount'],
            total=line['total'],
            amount_paid=0,
            status=data.get('status', 'pending'),
            payment_terms=customer.payment_terms,
            tax_exempt=tax_exempt,
            notes=data.get('notes')
        )
        invoice.items.append(InvoiceItem(
            service_schedule_id=schedule.id,
            description=schedule.display_name,
            quantity=1,
            unit_price=schedule.effective_price,
            tax_rate=rate,
            **line
        ))
        refresh_status(invoice)
        self.session.add(invoice)
        self.session.flush()

        schedule.invoice_id = invoice.id
        self.session.flush()

        self.events.log('invoice', invoice.id, 'INVOICE_GENERATED',
                        f"Invoice #{invoice.invoice_number} generated for {schedule.display_name}",
                        {'service_schedule_id': schedule.id, 'customer_id': customer.id, 'total': invoice.total})
        logger.info(f"Created invoice: {invoice.id} ({invoice.invoice_number})")
        return invoice.to_dict()

    def _build_items(self, items: List[Dict], tax_exempt: bool) -> List[InvoiceItem]:
        if not items:
            raise ValidationError('Please add at least one item', 'items')

        default_rate = None
        built = []
        for idx, item in enumerate(items):
            description = (item.get('description') or '').strip()
            if not description:
                raise ValidationError('Item description is required', f'items.{idx}.description')
            quantity = parse_number(item.get('quantity', 1), f'items.{idx}.quantity')
            unit_price = parse_number(item.get('unit_price', 0), f'items.{idx}.unit_price')
            if quantity is None or quantity <= 0:
                raise ValidationError('Quantity must be greater than 0', f'items.{idx}.quantity')
            if unit_price is None or unit_price < 0:
                raise ValidationError('Unit price cannot be negative', f'items.{idx}.unit_price')

            if tax_exempt:
                rate = 0.0
            elif item.get('tax_rate') not in (None, ''):
                rate = self.tax.resolve_rate(item['tax_rate'])
            else:
                if default_rate is None:
                    default_rate = self.tax.resolve_rate()
                rate = default_rate

            built.append(InvoiceItem(
                service_schedule_id=item.get('service_schedule_id'),
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                tax_rate=rate,
                **calculate_line_item(quantity, unit_price, rate)
            ))
        return built

    def create_invoice(self, data: Dict) -> Dict:
        """Manual invoice with explicit line items (tax rates as fractions)."""
        if not data.get('customer_id'):
            raise ValidationError('Customer is required', 'customer_id')
        customer = self.session.get(Customer, data['customer_id'])
        if not customer:
            raise NotFoundError('customer', data['customer_id'])
        if data.get('property_id'):
            prop = self.session.get(Property, data['property_id'])
            if not prop or prop.customer_id != customer.id:
                raise ValidationError('Property does not belong to this customer', 'property_id')

        status = data.get('status', 'pending')
        if status not in INVOICE_STATUSES - CLOSED_STATUSES:
            raise ValidationError('Invalid status', 'status')

        tax_exempt = bool(data.get('tax_exempt', customer.tax_exempt))
        items = self._build_items(data.get('items') or [], tax_exempt)
        totals = sum_line_items([{'subtotal': i.subtotal, 'tax_amount': i.tax_amount} for i in items])

        invoice_date = parse_date(data.get('invoice_date'), 'invoice_date') or date.today()
        invoice = Invoice(
            invoice_number=self._next_invoice_number(invoice_date),
            customer=customer,
            property_id=data.get('property_id'),
            invoice_date=invoice_date,
            due_date=self._due_date(data, invoice_date, customer),
            subtotal=totals['subtotal'],
            tax_amount=totals['tax_amount'],
            total=totals['total'],
            amount_paid=0,
            status=status,
            payment_terms=customer.payment_terms,
            tax_exempt=tax_exempt,
            notes=data.get('notes'),
            items=items
        )
        refresh_status(invoice)
        self.session.add(invoice)
        self.session.flush()

        self.events.log('invoice', invoice.id, 'INVOICE_GENERATED',
                        f"Invoice #{invoice.invoice_number} created",
                        {'customer_id': customer.id, 'total': invoice.total})
        logger.info(f"Created invoice: {invoice.id} ({invoice.invoice_number})")
        return invoice.to_dict()

    # =========================================================================
    # UPDATES
    # =========================================================================

    def record_payment(self, invoice_id: str, amount, payment_method: str,
                       payment_date=None) -> Dict:
        invoice = self._get(invoice_id)
        if invoice.status == 'cancelled':
            raise ValidationError('Cannot record a payment on a cancelled invoice', 'status')
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError('Payment method must be credit_card, bank_transfer, cash or check',
                                  'payment_method')

        amount = parse_number(amount, 'amount')
        if amount is None or amount <= 0:
            raise ValidationError('Payment amount must be greater than 0', 'amount')

        amount_paid = round_money((invoice.amount_paid or 0) + amount)
        if amount_paid > round_money(invoice.total):
            raise ValidationError('Amount paid cannot exceed the invoice total', 'amount')

        old_status = invoice.status
        invoice.amount_paid = amount_paid
        invoice.payment_method = payment_method
        invoice.payment_date = parse_date(payment_date, 'payment_date') or date.today()
        refresh_status(invoice)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log('invoice', invoice_id, 'PAYMENT_RECEIVED',
                        f"Payment of {format_currency(amount)} received for invoice #{invoice.invoice_number}",
                        {'amount': amount, 'payment_method': payment_method, 'balance': invoice.balance})
        if old_status != invoice.status:
            self.events.log_status_change('invoice', invoice_id, old_status, invoice.status)
        logger.info(f"Recorded payment on invoice: {invoice_id}")
        return invoice.to_dict()

    def update_invoice(self, invoice_id: str, data: Dict) -> Dict:
        invoice = self._get(invoice_id)

        if 'status' in data and data['status'] not in INVOICE_STATUSES:
            raise ValidationError('Invalid status', 'status')
        if data.get('status') == 'cancelled' and invoice.status != 'cancelled':
            if invoice.status == 'paid':
                raise ValidationError('Paid invoices cannot be cancelled', 'status')
            self._release_schedule(invoice)

        changes = {}
        for key in ('due_date', 'notes', 'status', 'payment_terms'):
            if key not in data:
                continue
            value = parse_date(data[key], key) if key == 'due_date' else data[key]
            if key == 'due_date' and value is None:
                raise ValidationError('Due date is required', 'due_date')
            old_value = getattr(invoice, key)
            if old_value != value:
                changes[key] = {'old': str(old_value) if old_value is not None else None,
                                'new': str(value) if value is not None else None}
            setattr(invoice, key, value)

        if 'due_date' in changes and invoice.status == 'overdue' and invoice.due_date >= date.today():
            invoice.status = 'pending'
        refresh_status(invoice)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_update('invoice', invoice_id, changes,
                               f"Invoice #{invoice.invoice_number} was updated")
        logger.info(f"Updated invoice: {invoice_id}")
        return invoice.to_dict()

    def mark_sent(self, invoice_id: str) -> Dict:
        """Draft and pending invoices move to 'sent' once delivered to the customer."""
        invoice = self._get(invoice_id)
        if invoice.status in ('draft', 'pending'):
            old_status = invoice.status
            invoice.status = 'sent'
            invoice.updated_at = datetime.utcnow()
            self.session.flush()
            self.events.log_status_change('invoice', invoice_id, old_status, 'sent')
        return invoice.to_dict()

    def cancel_invoice(self, invoice_id: str) -> Dict:
        invoice = self._get(invoice_id)
        if invoice.status == 'paid':
            raise ValidationError('Paid invoices cannot be cancelled', 'status')

        old_status = invoice.status
        invoice.status = 'cancelled'
        invoice.updated_at = datetime.utcnow()
        self._release_schedule(invoice)
        self.session.flush()

        self.events.log_status_change('invoice', invoice_id, old_status, 'cancelled')
        logger.info(f"Cancelled invoice: {invoice_id}")
        return invoice.to_dict()

    def delete_invoice(self, invoice_id: str) -> bool:
        invoice = self._get(invoice_id)
        if (invoice.amount_paid or 0) > 0:
            raise ValidationError('Invoices with payments cannot be deleted', 'amount_paid')

        number = invoice.invoice_number
        self._release_schedule(invoice)
        self.session.delete(invoice)
        self.session.flush()

        self.events.log_delete('invoice', invoice_id, f"Invoice #{number} was deleted")
        logger.info(f"Deleted invoice: {invoice_id}")
        return True

    def _release_schedule(self, invoice: Invoice):
        """Let the service be invoiced again."""
        schedules = self.session.query(ServiceSchedule).filter(ServiceSchedule.invoice_id == invoice.id).all()
        for schedule in schedules:
            schedule.invoice_id = None

    def mark_overdue_invoices(self, today: date = None) -> int:
        """Flag unpaid invoices past their due date. Returns how many changed."""
        today = today or date.today()
        invoices = self.session.query(Invoice).filter(
            Invoice.due_date < today,
            Invoice.status.notin_(CLOSED_STATUSES | {'overdue'})
        ).all()

        changed = 0
        for invoice in invoices:
            old_status = invoice.status
            if refresh_status(invoice, today) != old_status:
                changed += 1
                self.events.log('invoice', invoice.id, 'INVOICE_OVERDUE',
                                f"Invoice #{invoice.invoice_number} is overdue",
                                {'old_status': old_status, 'due_date': invoice.due_date.isoformat()})
        self.session.flush()

        if changed:
            logger.info(f"Marked {changed} invoice(s) overdue")
        return changed

    # =========================================================================
    # NOTIFICATION CONTENT
    # =========================================================================

    def build_invoice_sms(self, invoice: Dict) -> str:
        return (f"New invoice #{invoice['invoice_number']} for ${invoice['total']:.2f} has been created. "
                f"Due date: {format_date(invoice['due_date'])}.")

    def build_invoice_email(self, invoice: Dict) -> Dict[str, str]:
        """Subject, plain text and HTML for the invoice email."""
        customer = invoice['customer']
        view_url = f"{self.settings.get('PUBLIC_SITE_URL', '').rstrip('/')}/invoices/{invoice['id']}/view"
        company = self.settings.get('COMPANY_NAME', 'LawnBoss')

        item_lines = []
        item_rows = []
        for item in invoice['items']:
            tax_line = ''
            if item['tax_rate'] > 0:
                tax_line = f"\n   Tax ({item['tax_rate'] * 100:.1f}%): {format_currency(item['tax_amount'])}"
            item_lines.append(
                f"- {item['description']}\n"
                f"   Quantity: {item['quantity']:g}\n"
                f"   Price: {format_currency(item['unit_price'])}\n"
                f"   Subtotal: {format_currency(item['subtotal'])}"
                f"{tax_line}\n"
                f"   Total: {format_currency(item['total'])}"
            )
            item_rows.append(
                f"<tr><td>{item['description']}</td><td>{item['quantity']:g}</td>"
                f"<td>{format_currency(item['unit_price'])}</td><td>{format_currency(item['total'])}</td></tr>"
            )

        text = (
            f"Dear {customer['first_name']} {customer['last_name']},\n\n"
            f"Your invoice #{invoice['invoice_number']} has been generated.\n\n"
            f"Invoice Details:\n"
            f"Due Date: {format_date(invoice['due_date'])}\n"
            f"Total Amount: {format_currency(invoice['total'])}\n\n"
            f"Items:\n" + '\n'.join(item_lines) + "\n\n"
            f"Billing Address:\n"
            f"{customer['billing_address']}\n"
            f"{customer['billing_city']}, {customer['billing_state']} {customer['billing_zip']}\n\n"
            f"To view your invoice and make a payment, please click the link below:\n"
            f"{view_url}\n\n"
            f"If you have any questions about this invoice, please don't hesitate to contact us.\n\n"
            f"Thank you for your business!\n\n"
            f"Best regards,\n{company} Team"
        )

        html = (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            f"<p>Dear {customer['first_name']} {customer['last_name']},</p>"
            f"<p>Your invoice #{invoice['invoice_number']} has been generated.</p>"
            "<h3>Invoice Details:</h3>"
            f"<p>Due Date: {format_date(invoice['due_date'])}<br/>"
            f"Total Amount: {format_currency(invoice['total'])}</p>"
            "<table><tr><th>Description</th><th>Qty</th><th>Price</th><th>Total</th></tr>"
            + ''.join(item_rows) +
            "</table>"
            f"<p><a href=\"{view_url}\">View Invoice</a></p>"
            f"<p>Thank you for your business!</p><p>Best regards,<br/>{company} Team</p>"
            "</div>"
        )

        return {
            'subject': f"Invoice #{invoice['invoice_number']} from {company}",
            'text': text,
            'html': html
        }
