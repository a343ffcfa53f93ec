"""
Customer Repository - Database access layer for customers and their properties.
Every write is recorded in the event_log table.
"""

import logging
from datetime import datetime, date
from typing import List, Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.utils.formatters import format_phone_number
from database.models import Customer, Property, Invoice, ServiceSchedule
from services.errors import NotFoundError
from services.event_logger import get_event_logger
from services.list_query import filter_records, sort_records
from validators import (
    ValidationError, validate_customer_data, validate_property_data,
    raise_for_errors, sanitize_string
)

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = [
    'first_name', 'last_name', 'email', 'phone', 'company_name',
    'billing_address', 'billing_city', 'billing_state', 'billing_zip',
    'payment_terms', 'tax_exempt', 'status', 'referral_source', 'notes'
]

PROPERTY_FIELDS = [
    'address_line1', 'address_line2', 'city', 'state', 'zip_code',
    'property_size', 'lawn_size', 'has_irrigation', 'has_pets', 'notes'
]

CUSTOMER_SEARCH_FIELDS = [
    'full_name', 'email', 'phone', 'billing_address', 'billing_city', 'billing_state', 'billing_zip'
]

# Sort keys accepted from the customers page -> record field
CUSTOMER_SORT_FIELDS = {
    'name': 'full_name',
    'total_spent': 'total_spent',
    'properties': 'properties_count',
    'last_service': 'last_service',
    'created_at': 'created_at'
}

DUPLICATE_EMAIL = 'A customer with this email already exists'
DUPLICATE_ADDRESS = 'A property with this address already exists'


def _clean(value):
    return sanitize_string(value) if isinstance(value, str) else value


class CustomerRepository:
    """Repository for customer and property operations."""

    def __init__(self, session: Session, user_id: str = None):
        self.session = session
        self.user_id = user_id
        self.events = get_event_logger(session, user_id)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def _get_customer(self, customer_id: str) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if not customer:
            raise NotFoundError('customer', customer_id)
        return customer

    def _get_property(self, property_id: str) -> Property:
        prop = self.session.get(Property, property_id)
        if not prop:
            raise NotFoundError('property', property_id)
        return prop

    def _email_taken(self, email: str, exclude_id: str = None) -> bool:
        query = self.session.query(Customer.id).filter(func.lower(Customer.email) == email.lower())
        if exclude_id:
            query = query.filter(Customer.id != exclude_id)
        return query.first() is not None

    def _address_taken(self, customer_id: str, data: Dict, exclude_id: str = None) -> bool:
        query = self.session.query(Property.id).filter(
            Property.customer_id == customer_id,
            func.lower(Property.address_line1) == data['address_line1'].strip().lower(),
            func.lower(Property.city) == data['city'].strip().lower(),
            func.lower(Property.state) == data['state'].strip().lower(),
            Property.zip_code == data['zip_code'].strip()
        )
        if exclude_id:
            query = query.filter(Property.id != exclude_id)
        return query.first() is not None

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def _customer_totals(self) -> Dict[str, Dict[str, Any]]:
        """Derived columns for the customers list, keyed by customer id."""
        spent = dict(self.session.query(
            Invoice.customer_id, func.coalesce(func.sum(Invoice.amount_paid), 0)
        ).group_by(Invoice.customer_id).all())

        property_counts = dict(self.session.query(
            Property.customer_id, func.count(Property.id)
        ).group_by(Property.customer_id).all())

        last_service = dict(self.session.query(
            Property.customer_id, func.max(ServiceSchedule.scheduled_date)
        ).join(ServiceSchedule, ServiceSchedule.property_id == Property.id).filter(
            ServiceSchedule.status == 'completed'
        ).group_by(Property.customer_id).all())

        return {
            'total_spent': spent,
            'properties_count': property_counts,
            'last_service': last_service
        }

    def list_customers(self, search: str = None, status: str = None,
                       sort_field: str = 'name', sort_order: str = 'asc') -> List[Dict]:
        """List customers with total spent, property count and last completed service."""
        totals = self._customer_totals()
        records = []
        for customer in self.session.query(Customer).all():
            data = customer.to_dict()
            data['total_spent'] = round(float(totals['total_spent'].get(customer.id, 0)), 2)
            data['properties_count'] = totals['properties_count'].get(customer.id, 0)
            last = totals['last_service'].get(customer.id)
            data['last_service'] = last.isoformat() if last else None
            records.append(data)

        records = filter_records(records, search, CUSTOMER_SEARCH_FIELDS, {'status': status})
        return sort_records(records, CUSTOMER_SORT_FIELDS.get(sort_field, sort_field), sort_order)

    def get_customer(self, customer_id: str) -> Dict:
        """Customer with properties and the next scheduled service."""
        customer = self._get_customer(customer_id)
        data = customer.to_dict(include_properties=True)

        next_service = self.session.query(ServiceSchedule).join(Property).filter(
            Property.customer_id == customer_id,
            ServiceSchedule.status == 'scheduled',
            ServiceSchedule.scheduled_date >= date.today()
        ).order_by(ServiceSchedule.scheduled_date).first()
        data['next_service'] = next_service.to_dict(include_related=False) if next_service else None
        return data

    def create_customer(self, data: Dict) -> Dict:
        """
        Create a customer and the initial property at the billing address.

        Both rows are written inside a savepoint: if the property cannot be
        created the customer insert is rolled back too.
        """
        raise_for_errors(validate_customer_data(data))

        email = data['email'].strip().lower()
        if self._email_taken(email):
            raise ValidationError(DUPLICATE_EMAIL, 'email')

        savepoint = self.session.begin_nested()
        try:
            customer = Customer(
                first_name=_clean(data['first_name']),
                last_name=_clean(data['last_name']),
                email=email,
                phone=format_phone_number(data['phone']),
                company_name=_clean(data.get('company_name')),
                billing_address=_clean(data['billing_address']),
                billing_city=_clean(data['billing_city']),
                billing_state=_clean(data['billing_state']),
                billing_zip=data['billing_zip'].strip(),
                payment_terms=data.get('payment_terms', 30),
                tax_exempt=bool(data.get('tax_exempt', False)),
                status=data.get('status', 'active'),
                referral_source=_clean(data.get('referral_source')),
                notes=data.get('notes')
            )
            self.session.add(customer)
            self.session.flush()

            prop = Property(
                customer=customer,
                address_line1=customer.billing_address,
                city=customer.billing_city,
                state=customer.billing_state,
                zip_code=customer.billing_zip,
                has_irrigation=False,
                has_pets=False
            )
            self.session.add(prop)
            self.session.flush()
        except IntegrityError as e:
            savepoint.rollback()
            logger.error(f"Error adding customer: {e}")
            raise ValidationError(DUPLICATE_EMAIL, 'email')
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()

        self.events.log_create(
            'customer', customer.id,
            f"Customer '{customer.full_name}' was created",
            {'customer_name': customer.full_name, 'email': customer.email, 'property_id': prop.id}
        )
        logger.info(f"Created customer: {customer.id}")
        return customer.to_dict(include_properties=True)

    def update_customer(self, customer_id: str, data: Dict) -> Dict:
        customer = self._get_customer(customer_id)
        raise_for_errors(validate_customer_data(data, partial=True))

        if data.get('email'):
            data = {**data, 'email': data['email'].strip().lower()}
            if self._email_taken(data['email'], exclude_id=customer_id):
                raise ValidationError(DUPLICATE_EMAIL, 'email')
        if data.get('phone'):
            data = {**data, 'phone': format_phone_number(data['phone'])}

        changes = {}
        for key in CUSTOMER_FIELDS:
            if key in data:
                old_value = getattr(customer, key)
                new_value = _clean(data[key])
                if old_value != new_value:
                    changes[key] = {'old': old_value, 'new': new_value}
                setattr(customer, key, new_value)

        customer.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_update('customer', customer_id, changes,
                               f"Customer '{customer.full_name}' was updated")
        logger.info(f"Updated customer: {customer_id}")
        return customer.to_dict(include_properties=True)

    def delete_customer(self, customer_id: str) -> bool:
        """Hard delete. Customers with invoices are kept for the billing history."""
        customer = self._get_customer(customer_id)
        if customer.invoices:
            raise ValidationError('Cannot delete a customer with invoices', 'customer_id')

        name = customer.full_name
        self.session.delete(customer)
        self.session.flush()

        self.events.log_delete('customer', customer_id, f"Customer '{name}' was deleted",
                               {'customer_name': name})
        logger.info(f"Deleted customer: {customer_id}")
        return True

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    def list_properties(self, customer_id: str = None, search: str = None) -> List[Dict]:
        query = self.session.query(Property)
        if customer_id:
            query = query.filter(Property.customer_id == customer_id)
        properties = query.order_by(Property.created_at.desc()).all()

        records = []
        for prop in properties:
            data = prop.to_dict()
            data['customer'] = {
                'id': prop.customer.id,
                'first_name': prop.customer.first_name,
                'last_name': prop.customer.last_name,
                'full_name': prop.customer.full_name
            }
            records.append(data)

        return filter_records(records, search, ['full_address', 'customer.full_name'])

    def get_property(self, property_id: str) -> Dict:
        prop = self._get_property(property_id)
        data = prop.to_dict()
        data['customer'] = prop.customer.to_dict()
        return data

    def create_property(self, data: Dict) -> Dict:
        raise_for_errors(validate_property_data(data))
        customer = self._get_customer(data['customer_id'])

        if self._address_taken(data['customer_id'], data):
            raise ValidationError(DUPLICATE_ADDRESS, 'address_line1')

        prop = Property(customer=customer)
        for key in PROPERTY_FIELDS:
            if key in data:
                setattr(prop, key, _clean(data[key]))
        prop.has_irrigation = bool(data.get('has_irrigation', False))
        prop.has_pets = bool(data.get('has_pets', False))

        self.session.add(prop)
        self.session.flush()

        self.events.log_create('property', prop.id, f"Property '{prop.full_address}' was created",
                               {'customer_id': prop.customer_id})
        logger.info(f"Created property: {prop.id}")
        return prop.to_dict()

    def update_property(self, property_id: str, data: Dict) -> Dict:
        prop = self._get_property(property_id)
        raise_for_errors(validate_property_data(data, partial=True))

        merged = {key: data.get(key, getattr(prop, key)) for key in ('address_line1', 'city', 'state', 'zip_code')}
        if any(key in data for key in merged) and self._address_taken(prop.customer_id, merged, exclude_id=prop.id):
            raise ValidationError(DUPLICATE_ADDRESS, 'address_line1')

        changes = {}
        for key in PROPERTY_FIELDS:
            if key in data:
                old_value = getattr(prop, key)
                new_value = _clean(data[key])
                if old_value != new_value:
                    changes[key] = {'old': old_value, 'new': new_value}
                setattr(prop, key, new_value)

        prop.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_update('property', property_id, changes)
        logger.info(f"Updated property: {property_id}")
        return prop.to_dict()

    def delete_property(self, property_id: str) -> bool:
        prop = self._get_property(property_id)
        has_invoices = self.session.query(Invoice.id).filter(Invoice.property_id == property_id).first()
        if has_invoices:
            raise ValidationError('Cannot delete a property with invoices', 'property_id')

        address = prop.full_address
        self.session.delete(prop)
        self.session.flush()

        self.events.log_delete('property', property_id, f"Property '{address}' was deleted")
        logger.info(f"Deleted property: {property_id}")
        return True

    def get_property_service_history(self, property_id: str) -> List[Dict]:
        """Past and upcoming services at a property, newest first, with invoice status."""
        self._get_property(property_id)
        schedules = self.session.query(ServiceSchedule).filter(
            ServiceSchedule.property_id == property_id
        ).order_by(ServiceSchedule.scheduled_date.desc()).all()

        history = []
        for schedule in schedules:
            entry = schedule.to_dict(include_related=False)
            entry['service_type'] = schedule.service_type.to_dict() if schedule.service_type else None
            entry['technician'] = schedule.technician.to_dict() if schedule.technician else None
            invoice = self.session.get(Invoice, schedule.invoice_id) if schedule.invoice_id else None
            entry['invoice'] = {
                'id': invoice.id,
                'invoice_number': invoice.invoice_number,
                'status': invoice.status,
                'total': float(invoice.total or 0)
            } if invoice else None
            history.append(entry)
        return history
