"""
SQLAlchemy models for LawnBoss Admin.
Defines the tables for customers, properties, crews, scheduling, billing and messaging.
"""

import uuid
from datetime import datetime, date
from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, Date, Numeric,
    ForeignKey, JSON, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from database.connection import Base


# Native UUID / JSONB on PostgreSQL, portable types elsewhere (SQLite in tests)
GUID = String(36).with_variant(UUID(as_uuid=False), 'postgresql')
JSONType = JSON().with_variant(JSONB, 'postgresql')
Money = Numeric(10, 2, asdecimal=False)


def generate_uuid():
    """Generate a new UUID."""
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return round(float(value), 2) if value is not None else 0.0


# =============================================================================
# USERS & ROLES
# =============================================================================

class UserProfile(Base):
    """Staff accounts. Role drives what the account may change."""
    __tablename__ = 'user_profiles'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255))
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default='office_staff')  # admin, technician, office_staff
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'technician', 'office_staff')", name='ck_user_profiles_role'),
    )

    def to_dict(self, include_sensitive=False):
        data = {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'is_active': self.is_active,
            'last_login': _iso(self.last_login),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_sensitive:
            data['password_hash'] = self.password_hash
        return data


# =============================================================================
# CUSTOMERS & PROPERTIES
# =============================================================================

class Customer(Base):
    """Customer records with billing details."""
    __tablename__ = 'customers'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True)
    phone = Column(String(20))
    company_name = Column(String(255))
    billing_address = Column(String(255))
    billing_city = Column(String(100))
    billing_state = Column(String(50))
    billing_zip = Column(String(10))
    payment_terms = Column(Integer, default=30)
    tax_exempt = Column(Boolean, default=False)
    status = Column(String(20), default='active')  # active, inactive
    referral_source = Column(String(100))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    properties = relationship("Property", back_populates="customer", cascade="all, delete-orphan")
    invoices = relationship("Invoice", back_populates="customer")
    estimates = relationship("Estimate", back_populates="customer", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_customers_email', 'email'),
        Index('ix_customers_status', 'status'),
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self, include_properties=False):
        data = {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'company_name': self.company_name,
            'billing_address': self.billing_address,
            'billing_city': self.billing_city,
            'billing_state': self.billing_state,
            'billing_zip': self.billing_zip,
            'payment_terms': self.payment_terms,
            'tax_exempt': bool(self.tax_exempt),
            'status': self.status,
            'referral_source': self.referral_source,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_properties:
            data['properties'] = [p.to_dict() for p in self.properties]
        return data


class Property(Base):
    """Service locations owned by a customer."""
    __tablename__ = 'properties'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    customer_id = Column(GUID, ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255))
    city = Column(String(100), nullable=False)
    state = Column(String(50), nullable=False)
    zip_code = Column(String(10), nullable=False)
    property_size = Column(Float)  # square feet
    lawn_size = Column(Float)  # square feet
    has_irrigation = Column(Boolean, default=False)
    has_pets = Column(Boolean, default=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    customer = relationship("Customer", back_populates="properties")
    schedules = relationship("ServiceSchedule", back_populates="property", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_properties_customer', 'customer_id'),
        Index('ix_properties_address', 'address_line1', 'city', 'state', 'zip_code'),
    )

    @property
    def full_address(self):
        street = self.address_line1
        if self.address_line2:
            street = f"{street}, {self.address_line2}"
        return f"{street}, {self.city}, {self.state} {self.zip_code}"

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'address_line1': self.address_line1,
            'address_line2': self.address_line2,
            'city': self.city,
            'state': self.state,
            'zip_code': self.zip_code,
            'full_address': self.full_address,
            'property_size': self.property_size,
            'lawn_size': self.lawn_size,
            'has_irrigation': bool(self.has_irrigation),
            'has_pets': bool(self.has_pets),
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# SERVICE CATALOG & TAX
# =============================================================================

class ServiceType(Base):
    """Catalog of offered services and their base pricing."""
    __tablename__ = 'service_types'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)
    label = Column(String(100), unique=True, nullable=False)
    description = Column(Text)
    base_price = Column(Money, default=0)
    unit_type = Column(String(20), default='flat_rate')  # flat_rate, per_sqft, per_yard
    tax_rate = Column(Numeric(5, 4, asdecimal=False), default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'label': self.label,
            'description': self.description,
            'base_price': _money(self.base_price),
            'unit_type': self.unit_type,
            'tax_rate': float(self.tax_rate or 0),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class TaxConfiguration(Base):
    """Named tax rates; one of them is the default."""
    __tablename__ = 'tax_configurations'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)
    rate = Column(Numeric(5, 4, asdecimal=False), nullable=False)
    is_default = Column(Boolean, default=False)
    applies_to = Column(JSONType, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint('rate >= 0 AND rate <= 1', name='ck_tax_configurations_rate'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'rate': float(self.rate),
            'is_default': bool(self.is_default),
            'applies_to': self.applies_to or [],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# TECHNICIANS & CREWS
# =============================================================================

class Technician(Base):
    """Field technicians."""
    __tablename__ = 'technicians'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255))
    phone = Column(String(20))
    status = Column(String(20), default='active')  # active, inactive
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = relationship("CrewMember", back_populates="technician")

    __table_args__ = (
        Index('ix_technicians_status', 'status'),
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'status': self.status,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class Crew(Base):
    """Teams of technicians dispatched together."""
    __tablename__ = 'crews'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    status = Column(String(20), default='active')  # active, inactive
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship("CrewMember", back_populates="crew", cascade="all, delete-orphan")
    assignments = relationship("CrewAssignment", back_populates="crew", cascade="all, delete-orphan")

    def active_members(self):
        return [m for m in self.members if m.end_date is None]

    def to_dict(self, include_members=False):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'status': self.status,
            'member_count': len(self.active_members()),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_members:
            data['members'] = [m.to_dict() for m in self.active_members()]
        return data


class CrewMember(Base):
    """Technician membership in a crew, with a role and an active period."""
    __tablename__ = 'crew_members'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    crew_id = Column(GUID, ForeignKey('crews.id', ondelete='CASCADE'), nullable=False)
    technician_id = Column(GUID, ForeignKey('technicians.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(20), nullable=False, default='crew_member')  # crew_leader, crew_member, trainee
    is_primary_crew = Column(Boolean, default=False)
    start_date = Column(Date, nullable=False, default=date.today)
    end_date = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    crew = relationship("Crew", back_populates="members")
    technician = relationship("Technician", back_populates="memberships")

    __table_args__ = (
        Index('ix_crew_members_crew', 'crew_id'),
        Index('ix_crew_members_technician', 'technician_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'crew_id': self.crew_id,
            'technician_id': self.technician_id,
            'technician': self.technician.to_dict() if self.technician else None,
            'role': self.role,
            'is_primary_crew': bool(self.is_primary_crew),
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class CrewAssignment(Base):
    """A crew dispatched to a scheduled service."""
    __tablename__ = 'crew_assignments'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    crew_id = Column(GUID, ForeignKey('crews.id', ondelete='CASCADE'), nullable=False)
    service_schedule_id = Column(GUID, ForeignKey('service_schedules.id', ondelete='CASCADE'), nullable=False)
    assigned_by = Column(GUID, ForeignKey('user_profiles.id'))
    status = Column(String(20), default='pending')  # pending, accepted, completed, cancelled
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    crew = relationship("Crew", back_populates="assignments")
    schedule = relationship("ServiceSchedule", back_populates="crew_assignments")

    __table_args__ = (
        UniqueConstraint('crew_id', 'service_schedule_id', name='uq_crew_assignments_crew_schedule'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'crew_id': self.crew_id,
            'service_schedule_id': self.service_schedule_id,
            'assigned_by': self.assigned_by,
            'status': self.status,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# SERVICE SCHEDULING
# =============================================================================

class ServiceSchedule(Base):
    """A scheduled (possibly recurring) service at a property."""
    __tablename__ = 'service_schedules'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    property_id = Column(GUID, ForeignKey('properties.id', ondelete='CASCADE'), nullable=False)
    service_type_id = Column(GUID, ForeignKey('service_types.id'))  # NULL for custom services
    assigned_technician_id = Column(GUID, ForeignKey('technicians.id'))
    scheduled_date = Column(Date, nullable=False)
    scheduled_time_window = Column(String(20))  # morning, afternoon, evening
    status = Column(String(20), default='scheduled')  # scheduled, in_progress, completed, cancelled
    description = Column(Text)
    base_price = Column(Money)
    notes = Column(Text)
    invoice_id = Column(GUID, ForeignKey('invoices.id', use_alter=True, name='fk_service_schedules_invoice'))

    # Recurrence
    recurrence_type = Column(String(20), default='one_time')  # one_time, weekly, bi_weekly, monthly, custom
    recurrence_interval = Column(Integer, default=1)
    recurrence_days = Column(JSONType, default=list)  # 0=Sunday .. 6=Saturday
    start_date = Column(Date)
    end_date = Column(Date)
    last_scheduled_date = Column(Date)
    next_scheduled_date = Column(Date)
    auto_schedule = Column(Boolean, default=False)
    auto_invoice = Column(Boolean, default=False)
    is_recurring = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_service_schedules_date', 'scheduled_date'),
        Index('ix_service_schedules_status', 'status'),
        Index('ix_service_schedules_property', 'property_id'),
        Index('ix_service_schedules_next_date', 'next_scheduled_date'),
    )

    @property
    def is_custom(self):
        return self.service_type_id is None

    @property
    def display_name(self):
        if self.description:
            return self.description
        return self.service_type.label if self.service_type else 'Custom Service'

    @property
    def effective_price(self):
        if self.base_price is not None:
            return _money(self.base_price)
        return _money(self.service_type.base_price) if self.service_type else 0.0

    def to_dict(self, include_related=True):
        data = {
            'id': self.id,
            'property_id': self.property_id,
            'service_type_id': self.service_type_id,
            'assigned_technician_id': self.assigned_technician_id,
            'scheduled_date': _iso(self.scheduled_date),
            'scheduled_time_window': self.scheduled_time_window,
            'status': self.status,
            'description': self.description,
            'display_name': self.display_name,
            'base_price': self.effective_price,
            'notes': self.notes,
            'invoice_id': self.invoice_id,
            'recurrence_type': self.recurrence_type,
            'recurrence_interval': self.recurrence_interval,
            'recurrence_days': self.recurrence_days or [],
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'last_scheduled_date': _iso(self.last_scheduled_date),
            'next_scheduled_date': _iso(self.next_scheduled_date),
            'auto_schedule': bool(self.auto_schedule),
            'auto_invoice': bool(self.auto_invoice),
            'is_recurring': bool(self.is_recurring),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_related:
            data['service_type'] = self.service_type.to_dict() if self.service_type else None
            data['property'] = self.property.to_dict() if self.property else None
            data['customer_id'] = self.property.customer_id if self.property else None
            data['technician'] = self.technician.to_dict() if self.technician else None
        return data

    # Relationships (declared last: the name "property" shadows the builtin in the class body)
    property = relationship("Property", back_populates="schedules")
    service_type = relationship("ServiceType")
    technician = relationship("Technician")
    instances = relationship("ServiceScheduleInstance", back_populates="schedule",
                             cascade="all, delete-orphan", order_by="ServiceScheduleInstance.scheduled_date")
    crew_assignments = relationship("CrewAssignment", back_populates="schedule", cascade="all, delete-orphan")


class ServiceScheduleInstance(Base):
    """A concrete visit generated from a recurring schedule."""
    __tablename__ = 'service_schedule_instances'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    service_schedule_id = Column(GUID, ForeignKey('service_schedules.id', ondelete='CASCADE'), nullable=False)
    scheduled_date = Column(Date, nullable=False)
    status = Column(String(20), default='pending')  # pending, confirmed, in_progress, completed, cancelled, rescheduled
    crew_id = Column(GUID, ForeignKey('crews.id'))
    completed_at = Column(DateTime)
    notes = Column(Text)
    weather_conditions = Column(JSONType)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    schedule = relationship("ServiceSchedule", back_populates="instances")
    crew = relationship("Crew")

    __table_args__ = (
        UniqueConstraint('service_schedule_id', 'scheduled_date', name='uq_schedule_instances_date'),
        Index('ix_schedule_instances_date', 'scheduled_date'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'service_schedule_id': self.service_schedule_id,
            'scheduled_date': _iso(self.scheduled_date),
            'status': self.status,
            'crew_id': self.crew_id,
            'completed_at': _iso(self.completed_at),
            'notes': self.notes,
            'weather_conditions': self.weather_conditions,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# ESTIMATES
# =============================================================================

class Estimate(Base):
    """Priced proposals sent to customers."""
    __tablename__ = 'estimates'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    customer_id = Column(GUID, ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    property_id = Column(GUID, ForeignKey('properties.id', ondelete='CASCADE'), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    valid_until = Column(Date, nullable=False)
    notes = Column(Text)
    subtotal = Column(Money, default=0)
    tax_amount = Column(Money, default=0)
    total_amount = Column(Money, default=0)
    # draft, sent, accepted, declined, expired, opportunity_won, opportunity_lost
    status = Column(String(20), default='draft')
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="estimates")
    property = relationship("Property")
    items = relationship("EstimateItem", back_populates="estimate", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_estimates_customer', 'customer_id'),
        Index('ix_estimates_status', 'status'),
    )

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'customer_id': self.customer_id,
            'property_id': self.property_id,
            'title': self.title,
            'description': self.description,
            'valid_until': _iso(self.valid_until),
            'notes': self.notes,
            'subtotal': _money(self.subtotal),
            'tax_amount': _money(self.tax_amount),
            'total_amount': _money(self.total_amount),
            'status': self.status,
            'customer': self.customer.to_dict() if self.customer else None,
            'property': self.property.to_dict() if self.property else None,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_items:
            data['items'] = [i.to_dict() for i in self.items]
        return data


class EstimateItem(Base):
    """Estimate line items. tax_rate is a percentage (7.5 = 7.5%)."""
    __tablename__ = 'estimate_items'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    estimate_id = Column(GUID, ForeignKey('estimates.id', ondelete='CASCADE'), nullable=False)
    service_type_id = Column(GUID, ForeignKey('service_types.id'))
    description = Column(Text)
    quantity = Column(Float, default=1)
    unit_price = Column(Money, default=0)
    tax_rate = Column(Float, default=0)
    tax_amount = Column(Money, default=0)
    subtotal = Column(Money, default=0)
    total = Column(Money, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    estimate = relationship("Estimate", back_populates="items")

    def to_dict(self):
        return {
            'id': self.id,
            'estimate_id': self.estimate_id,
            'service_type_id': self.service_type_id,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': _money(self.unit_price),
            'tax_rate': self.tax_rate or 0,
            'tax_amount': _money(self.tax_amount),
            'subtotal': _money(self.subtotal),
            'total': _money(self.total)
        }


# =============================================================================
# INVOICES
# =============================================================================

class Invoice(Base):
    """Customer invoices with payment tracking."""
    __tablename__ = 'invoices'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    invoice_number = Column(String(20), unique=True, nullable=False)
    customer_id = Column(GUID, ForeignKey('customers.id'), nullable=False)
    property_id = Column(GUID, ForeignKey('properties.id'))
    service_schedule_id = Column(GUID, ForeignKey('service_schedules.id'))
    invoice_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=False)
    subtotal = Column(Money, default=0)
    tax_amount = Column(Money, default=0)
    total = Column(Money, default=0)
    amount_paid = Column(Money, default=0)
    balance = Column(Money, default=0)
    status = Column(String(20), default='pending')  # draft, pending, sent, paid, overdue, cancelled
    payment_date = Column(Date)
    payment_method = Column(String(20))  # credit_card, bank_transfer, cash, check
    payment_terms = Column(Integer)
    tax_exempt = Column(Boolean, default=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="invoices")
    property = relationship("Property")
    schedule = relationship("ServiceSchedule", foreign_keys=[service_schedule_id])
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_invoices_customer', 'customer_id'),
        Index('ix_invoices_status', 'status'),
        Index('ix_invoices_due_date', 'due_date'),
        CheckConstraint('amount_paid <= total', name='ck_invoices_amount_paid'),
    )

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'customer_id': self.customer_id,
            'property_id': self.property_id,
            'service_schedule_id': self.service_schedule_id,
            'invoice_date': _iso(self.invoice_date),
            'due_date': _iso(self.due_date),
            'subtotal': _money(self.subtotal),
            'tax_amount': _money(self.tax_amount),
            'total': _money(self.total),
            'amount_paid': _money(self.amount_paid),
            'balance': _money(self.balance),
            'status': self.status,
            'payment_date': _iso(self.payment_date),
            'payment_method': self.payment_method,
            'payment_terms': self.payment_terms,
            'tax_exempt': bool(self.tax_exempt),
            'notes': self.notes,
            'customer': self.customer.to_dict() if self.customer else None,
            'property': self.property.to_dict() if self.property else None,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_items:
            data['items'] = [i.to_dict() for i in self.items]
        return data


class InvoiceItem(Base):
    """Invoice line items. tax_rate is a fraction (0.07 = 7%)."""
    __tablename__ = 'invoice_items'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    invoice_id = Column(GUID, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    service_schedule_id = Column(GUID, ForeignKey('service_schedules.id'))
    description = Column(Text, nullable=False)
    quantity = Column(Float, default=1)
    unit_price = Column(Money, default=0)
    tax_rate = Column(Numeric(5, 4, asdecimal=False), default=0)
    tax_amount = Column(Money, default=0)
    subtotal = Column(Money, default=0)
    total = Column(Money, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="items")

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'service_schedule_id': self.service_schedule_id,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': _money(self.unit_price),
            'tax_rate': float(self.tax_rate or 0),
            'tax_amount': _money(self.tax_amount),
            'subtotal': _money(self.subtotal),
            'total': _money(self.total)
        }


# =============================================================================
# MESSAGING
# =============================================================================

class MessageProvider(Base):
    """Outbound email/SMS provider credentials (SendGrid, Twilio, SMTP)."""
    __tablename__ = 'message_providers'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(100), nullable=False)
    type = Column(String(10), nullable=False)  # email, sms
    is_active = Column(Boolean, default=True)
    settings = Column(JSONType, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, include_settings=False):
        data = {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'is_active': bool(self.is_active),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_settings:
            data['settings'] = self.settings or {}
        return data


class Message(Base):
    """An outbound message and its per-customer delivery records."""
    __tablename__ = 'messages'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    type = Column(String(20), nullable=False)  # email, sms, estimate, invoice
    subject = Column(String(255))
    content = Column(Text, nullable=False)
    sent_by = Column(GUID, ForeignKey('user_profiles.id'))
    sent_at = Column(DateTime, default=datetime.utcnow)
    status = Column(String(20), default='pending')  # pending, sent, delivered, failed
    extra_data = Column(JSONType, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    recipients = relationship("MessageRecipient", back_populates="message", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_messages_sent_at', 'sent_at'),
        Index('ix_messages_sent_by', 'sent_by'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'subject': self.subject,
            'content': self.content,
            'sent_by': self.sent_by,
            'sent_at': _iso(self.sent_at),
            'status': self.status,
            'metadata': self.extra_data or {},
            'recipients': [r.to_dict() for r in self.recipients],
            'created_at': _iso(self.created_at)
        }


class MessageRecipient(Base):
    """Delivery status of a message for one customer."""
    __tablename__ = 'message_recipients'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    message_id = Column(GUID, ForeignKey('messages.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(GUID, ForeignKey('customers.id', ondelete='SET NULL'))
    recipient_name = Column(String(255))
    recipient_email = Column(String(255))
    recipient_phone = Column(String(20))
    status = Column(String(20), default='pending')  # pending, sent, delivered, failed
    sent_at = Column(DateTime)
    delivered_at = Column(DateTime)
    error_message = Column(Text)

    message = relationship("Message", back_populates="recipients")

    def to_dict(self):
        return {
            'id': self.id,
            'message_id': self.message_id,
            'customer_id': self.customer_id,
            'recipient_name': self.recipient_name,
            'recipient_email': self.recipient_email,
            'recipient_phone': self.recipient_phone,
            'status': self.status,
            'sent_at': _iso(self.sent_at),
            'delivered_at': _iso(self.delivered_at),
            'error_message': self.error_message
        }


class MessageLog(Base):
    """Raw provider delivery attempts."""
    __tablename__ = 'message_logs'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    provider_id = Column(GUID, ForeignKey('message_providers.id', ondelete='SET NULL'))
    message_type = Column(String(30), nullable=False)  # custom_email, custom_sms, invoice_email, ...
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255))
    content = Column(Text)
    status = Column(String(20), default='sent')  # sent, failed
    error = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'provider_id': self.provider_id,
            'message_type': self.message_type,
            'recipient': self.recipient,
            'subject': self.subject,
            'status': self.status,
            'error': self.error,
            'created_at': _iso(self.created_at)
        }


# =============================================================================
# EVENT LOG
# =============================================================================

class EventLog(Base):
    """Audit trail of changes made through the API and background jobs."""
    __tablename__ = 'event_log'

    id = Column(GUID, primary_key=True, default=generate_uuid)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    actor_type = Column(String(20), default='system')  # user, system
    actor_id = Column(GUID)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(GUID)
    event_type = Column(String(50), nullable=False)
    description = Column(Text)
    extra_data = Column(JSONType, default=dict)

    __table_args__ = (
        Index('ix_event_log_entity', 'entity_type', 'entity_id'),
        Index('ix_event_log_timestamp', 'timestamp'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': _iso(self.timestamp),
            'actor_type': self.actor_type,
            'actor_id': self.actor_id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'event_type': self.event_type,
            'description': self.description,
            'metadata': self.extra_data or {}
        }
