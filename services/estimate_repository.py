"""
Estimate Repository - Priced proposals and their line items.

Estimate items carry percentage tax rates (7.5 = 7.5 %).
"""

import logging
from datetime import datetime, date, timedelta
from typing import List, Dict, Any

from sqlalchemy.orm import Session

from app.utils.formatters import format_address, format_currency, format_date
from config import get_settings
from database.models import Customer, Property, Estimate, EstimateItem, ServiceType
from services.errors import NotFoundError
from services.event_logger import get_event_logger
from services.list_query import filter_records, sort_records
from services.tax_service import TaxService, calculate_line_item, sum_line_items
from validators import (
    ValidationError, validate_estimate_data, raise_for_errors, parse_date, parse_number
)

logger = logging.getLogger(__name__)

ESTIMATE_STATUSES = {
    'draft', 'sent', 'accepted', 'declined', 'expired', 'opportunity_won', 'opportunity_lost'
}
EXPIRABLE_STATUSES = ('draft', 'sent')

ESTIMATE_SEARCH_FIELDS = ['title', 'customer.full_name', 'property.full_address']


class EstimateRepository:
    """Repository for estimates."""

    def __init__(self, session: Session, user_id: str = None, settings: Dict[str, Any] = None):
        self.session = session
        self.user_id = user_id
        self.settings = settings if settings is not None else get_settings()
        self.events = get_event_logger(session, user_id)
        self.tax = TaxService(session, user_id)

    def _get(self, estimate_id: str) -> Estimate:
        estimate = self.session.get(Estimate, estimate_id)
        if not estimate:
            raise NotFoundError('estimate', estimate_id)
        return estimate

    def _service_tax_rate(self, service_type: ServiceType) -> float:
        if service_type.tax_rate is not None:
            return float(service_type.tax_rate)
        return self.tax.resolve_rate()

    def _build_items(self, items: List[Dict]) -> List[EstimateItem]:
        built = []
        for idx, item in enumerate(items):
            service_type = None
            if item.get('service_type_id'):
                service_type = self.session.get(ServiceType, item['service_type_id'])
                if not service_type:
                    raise NotFoundError('service_type', item['service_type_id'])

            description = item.get('description') or (service_type.label if service_type else None)
            if not description:
                raise ValidationError('Item description is required', f'items.{idx}.description')

            quantity = parse_number(item.get('quantity', 1), f'items.{idx}.quantity')
            unit_price = parse_number(item.get('unit_price'), f'items.{idx}.unit_price')
            if unit_price is None:
                unit_price = float(service_type.base_price or 0) if service_type else 0.0
            tax_rate = parse_number(item.get('tax_rate'), f'items.{idx}.tax_rate')
            if tax_rate is None:
                tax_rate = round(self._service_tax_rate(service_type) * 100, 4) if service_type else 0.0
            if tax_rate < 0 or tax_rate > 100:
                raise ValidationError('Tax rate must be between 0 and 100', f'items.{idx}.tax_rate')

            built.append(EstimateItem(
                service_type_id=service_type.id if service_type else None,
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                tax_rate=tax_rate,
                **calculate_line_item(quantity, unit_price, tax_rate, percent=True)
            ))
        return built

    def _apply_totals(self, estimate: Estimate):
        totals = sum_line_items([{'subtotal': i.subtotal, 'tax_amount': i.tax_amount} for i in estimate.items])
        estimate.subtotal = totals['subtotal']
        estimate.tax_amount = totals['tax_amount']
        estimate.total_amount = totals['total']

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_estimates(self, status: str = None, customer_id: str = None, search: str = None,
                       sort_field: str = 'created_at', sort_order: str = 'desc') -> List[Dict]:
        query = self.session.query(Estimate)
        if customer_id:
            query = query.filter(Estimate.customer_id == customer_id)
        records = [e.to_dict(include_items=False) for e in query.all()]
        records = filter_records(records, search, ESTIMATE_SEARCH_FIELDS, {'status': status})
        return sort_records(records, sort_field, sort_order)

    def get_estimate(self, estimate_id: str) -> Dict:
        return self._get(estimate_id).to_dict()

    # =========================================================================
    # WRITES
    # =========================================================================

    def create_estimate(self, data: Dict) -> Dict:
        """Create a draft estimate with its items. valid_until defaults to the validity window."""
        if not data.get('valid_until'):
            valid_days = self.settings.get('ESTIMATE_VALID_DAYS', 30)
            data = {**data, 'valid_until': (date.today() + timedelta(days=valid_days)).isoformat()}
        raise_for_errors(validate_estimate_data(data))

        customer = self.session.get(Customer, data['customer_id'])
        if not customer:
            raise NotFoundError('customer', data['customer_id'])
        prop = self.session.get(Property, data['property_id'])
        if not prop or prop.customer_id != customer.id:
            raise ValidationError('Please select a customer and property', 'property_id')

        # Items go in after the header; a bad item removes the whole estimate
        savepoint = self.session.begin_nested()
        try:
            estimate = Estimate(
                customer=customer,
                property=prop,
                title=data['title'].strip(),
                description=data.get('description'),
                valid_until=parse_date(data['valid_until'], 'valid_until'),
                notes=data.get('notes'),
                status='draft'
            )
            self.session.add(estimate)
            self.session.flush()

            estimate.items = self._build_items(data['items'])
            self._apply_totals(estimate)
            self.session.flush()
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()

        self.events.log_create('estimate', estimate.id, f"Estimate '{estimate.title}' was created",
                               {'customer_id': customer.id, 'total_amount': estimate.total_amount})
        logger.info(f"Created estimate: {estimate.id}")
        return estimate.to_dict()

    def update_estimate(self, estimate_id: str, data: Dict) -> Dict:
        """Update header fields; a submitted item list replaces the existing items."""
        estimate = self._get(estimate_id)

        changes = {}
        if 'title' in data:
            if not (data['title'] or '').strip():
                raise ValidationError('Please enter a title', 'title')
        if 'valid_until' in data:
            if not data['valid_until']:
                raise ValidationError('Please select a valid until date', 'valid_until')
            data = {**data, 'valid_until': parse_date(data['valid_until'], 'valid_until')}

        for key in ('title', 'description', 'valid_until', 'notes'):
            if key in data:
                old_value = getattr(estimate, key)
                if old_value != data[key]:
                    changes[key] = {'old': str(old_value) if old_value else None,
                                    'new': str(data[key]) if data[key] else None}
                setattr(estimate, key, data[key])

        if 'items' in data:
            if not data['items']:
                raise ValidationError('Please add at least one item', 'items')
            estimate.items = self._build_items(data['items'])
            self._apply_totals(estimate)
            changes['items'] = {'count': len(estimate.items), 'total_amount': estimate.total_amount}

        estimate.updated_at = datetime.utcnow()
        self.session.flush()

        if 'status' in data:
            self.update_status(estimate_id, data['status'])

        self.events.log_update('estimate', estimate_id, changes, f"Estimate '{estimate.title}' was updated")
        logger.info(f"Updated estimate: {estimate_id}")
        return estimate.to_dict()

    def update_status(self, estimate_id: str, status: str) -> Dict:
        estimate = self._get(estimate_id)
        if status not in ESTIMATE_STATUSES:
            raise ValidationError('Invalid status', 'status')

        old_status = estimate.status
        if old_status != status:
            estimate.status = status
            estimate.updated_at = datetime.utcnow()
            self.session.flush()
            self.events.log_status_change('estimate', estimate_id, old_status, status)
            logger.info(f"Estimate {estimate_id} status: {old_status} -> {status}")
        return estimate.to_dict()

    def delete_estimate(self, estimate_id: str) -> bool:
        estimate = self._get(estimate_id)
        title = estimate.title
        self.session.delete(estimate)
        self.session.flush()

        self.events.log_delete('estimate', estimate_id, f"Estimate '{title}' was deleted")
        logger.info(f"Deleted estimate: {estimate_id}")
        return True

    def mark_expired(self, today: date = None) -> int:
        """Expire draft and sent estimates past their valid-until date."""
        today = today or date.today()
        estimates = self.session.query(Estimate).filter(
            Estimate.valid_until < today,
            Estimate.status.in_(EXPIRABLE_STATUSES)
        ).all()

        for estimate in estimates:
            old_status = estimate.status
            estimate.status = 'expired'
            self.events.log('estimate', estimate.id, 'ESTIMATE_EXPIRED',
                            f"Estimate '{estimate.title}' expired",
                            {'old_status': old_status, 'valid_until': estimate.valid_until.isoformat()})
        self.session.flush()

        if estimates:
            logger.info(f"Expired {len(estimates)} estimate(s)")
        return len(estimates)

    # =========================================================================
    # NOTIFICATION CONTENT
    # =========================================================================

    def build_estimate_email(self, estimate: Dict) -> Dict[str, str]:
        """Subject and body of the estimate email."""
        customer = estimate['customer']
        prop = estimate['property']
        address = format_address(prop['address_line1'], prop['city'], prop['state'],
                                 prop['zip_code'], prop.get('address_line2'))
        body = (
            f"Dear {customer['first_name']} {customer['last_name']},\n\n"
            f"Please find attached your estimate for:\n"
            f"{estimate['title']}\n\n"
            f"Property:\n"
            f"{address}\n\n"
            f"Total Amount: {format_currency(estimate['total_amount'])}\n"
            f"Valid Until: {format_date(estimate['valid_until'])}\n\n"
            f"Thank you for your business!"
        )
        return {'subject': f"Estimate: {estimate['title']}", 'text': body}

    def build_estimate_sms(self, estimate: Dict) -> str:
        site_url = self.settings.get('PUBLIC_SITE_URL', '').rstrip('/')
        return (f"Hi {estimate['customer']['first_name']}, your estimate for {estimate['title']} is ready. "
                f"Total: {format_currency(estimate['total_amount'])}. "
                f"View and respond here: {site_url}/estimates/{estimate['id']}/view")
