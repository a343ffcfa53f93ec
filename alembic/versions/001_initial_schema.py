"""Initial database schema

Revision ID: 001
Revises: 
Create Date: 2026-10-18

Creates all core tables for LawnBoss Admin.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', postgresql.UUID(as_uuid=False), nullable=False)


def _fk(name, nullable=True):
    return sa.Column(name, postgresql.UUID(as_uuid=False), nullable=nullable)


def _money(name):
    return sa.Column(name, sa.Numeric(10, 2), default=0)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now()),
    ]


def upgrade() -> None:
    # Staff accounts
    op.create_table('user_profiles',
        _id(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='office_staff'),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('last_login', sa.DateTime()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.CheckConstraint("role IN ('admin', 'technician', 'office_staff')", name='ck_user_profiles_role')
    )

    # Customers table
    op.create_table('customers',
        _id(),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255)),
        sa.Column('phone', sa.String(20)),
        sa.Column('company_name', sa.String(255)),
        sa.Column('billing_address', sa.String(255)),
        sa.Column('billing_city', sa.String(100)),
        sa.Column('billing_state', sa.String(50)),
        sa.Column('billing_zip', sa.String(10)),
        sa.Column('payment_terms', sa.Integer(), default=30),
        sa.Column('tax_exempt', sa.Boolean(), default=False),
        sa.Column('status', sa.String(20), default='active'),
        sa.Column('referral_source', sa.String(100)),
        sa.Column('notes', sa.Text()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('ix_customers_email', 'customers', ['email'])
    op.create_index('ix_customers_status', 'customers', ['status'])

    # Properties table
    op.create_table('properties',
        _id(),
        _fk('customer_id', nullable=False),
        sa.Column('address_line1', sa.String(255), nullable=False),
        sa.Column('address_line2', sa.String(255)),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(50), nullable=False),
        sa.Column('zip_code', sa.String(10), nullable=False),
        sa.Column('property_size', sa.Float()),
        sa.Column('lawn_size', sa.Float()),
        sa.Column('has_irrigation', sa.Boolean(), default=False),
        sa.Column('has_pets', sa.Boolean(), default=False),
        sa.Column('notes', sa.Text()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_properties_customer', 'properties', ['customer_id'])
    op.create_index('ix_properties_address', 'properties', ['address_line1', 'city', 'state', 'zip_code'])

    # Service catalog and tax
    op.create_table('service_types',
        _id(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('label', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        _money('base_price'),
        sa.Column('unit_type', sa.String(20), default='flat_rate'),
        sa.Column('tax_rate', sa.Numeric(5, 4), default=0),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('label')
    )

    op.create_table('tax_configurations',
        _id(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('rate', sa.Numeric(5, 4), nullable=False),
        sa.Column('is_default', sa.Boolean(), default=False),
        sa.Column('applies_to', postgresql.JSONB, default=[]),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('rate >= 0 AND rate <= 1', name='ck_tax_configurations_rate')
    )

    # Technicians and crews
    op.create_table('technicians',
        _id(),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255)),
        sa.Column('phone', sa.String(20)),
        sa.Column('status', sa.String(20), default='active'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_technicians_status', 'technicians', ['status'])

    op.create_table('crews',
        _id(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('status', sa.String(20), default='active'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('crew_members',
        _id(),
        _fk('crew_id', nullable=False),
        _fk('technician_id', nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='crew_member'),
        sa.Column('is_primary_crew', sa.Boolean(), default=False),
        sa.Column('start_date', sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column('end_date', sa.Date()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['crew_id'], ['crews.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['technician_id'], ['technicians.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_crew_members_crew', 'crew_members', ['crew_id'])
    op.create_index('ix_crew_members_technician', 'crew_members', ['technician_id'])

    # Scheduling (invoice FK added after invoices exists)
    op.create_table('service_schedules',
        _id(),
        _fk('property_id', nullable=False),
        _fk('service_type_id'),
        _fk('assigned_technician_id'),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('scheduled_time_window', sa.String(20)),
        sa.Column('status', sa.String(20), default='scheduled'),
        sa.Column('description', sa.Text()),
        sa.Column('base_price', sa.Numeric(10, 2)),
        sa.Column('notes', sa.Text()),
        _fk('invoice_id'),
        sa.Column('recurrence_type', sa.String(20), default='one_time'),
        sa.Column('recurrence_interval', sa.Integer(), default=1),
        sa.Column('recurrence_days', postgresql.JSONB, default=[]),
        sa.Column('start_date', sa.Date()),
        sa.Column('end_date', sa.Date()),
        sa.Column('last_scheduled_date', sa.Date()),
        sa.Column('next_scheduled_date', sa.Date()),
        sa.Column('auto_schedule', sa.Boolean(), default=False),
        sa.Column('auto_invoice', sa.Boolean(), default=False),
        sa.Column('is_recurring', sa.Boolean(), default=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_type_id'], ['service_types.id']),
        sa.ForeignKeyConstraint(['assigned_technician_id'], ['technicians.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_service_schedules_date', 'service_schedules', ['scheduled_date'])
    op.create_index('ix_service_schedules_status', 'service_schedules', ['status'])
    op.create_index('ix_service_schedules_property', 'service_schedules', ['property_id'])
    op.create_index('ix_service_schedules_next_date', 'service_schedules', ['next_scheduled_date'])

    op.create_table('service_schedule_instances',
        _id(),
        _fk('service_schedule_id', nullable=False),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), default='pending'),
        _fk('crew_id'),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('notes', sa.Text()),
        sa.Column('weather_conditions', postgresql.JSONB),
        *_timestamps(),
        sa.ForeignKeyConstraint(['service_schedule_id'], ['service_schedules.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['crew_id'], ['crews.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('service_schedule_id', 'scheduled_date', name='uq_schedule_instances_date')
    )
    op.create_index('ix_schedule_instances_date', 'service_schedule_instances', ['scheduled_date'])

    op.create_table('crew_assignments',
        _id(),
        _fk('crew_id', nullable=False),
        _fk('service_schedule_id', nullable=False),
        _fk('assigned_by'),
        sa.Column('status', sa.String(20), default='pending'),
        sa.Column('notes', sa.Text()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['crew_id'], ['crews.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_schedule_id'], ['service_schedules.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assigned_by'], ['user_profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('crew_id', 'service_schedule_id', name='uq_crew_assignments_crew_schedule')
    )

    # Estimates
    op.create_table('estimates',
        _id(),
        _fk('customer_id', nullable=False),
        _fk('property_id', nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('valid_until', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text()),
        _money('subtotal'),
        _money('tax_amount'),
        _money('total_amount'),
        sa.Column('status', sa.String(20), default='draft'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_estimates_customer', 'estimates', ['customer_id'])
    op.create_index('ix_estimates_status', 'estimates', ['status'])

    op.create_table('estimate_items',
        _id(),
        _fk('estimate_id', nullable=False),
        _fk('service_type_id'),
        sa.Column('description', sa.Text()),
        sa.Column('quantity', sa.Float(), default=1),
        _money('unit_price'),
        sa.Column('tax_rate', sa.Float(), default=0),
        _money('tax_amount'),
        _money('subtotal'),
        _money('total'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.ForeignKeyConstraint(['estimate_id'], ['estimates.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_type_id'], ['service_types.id']),
        sa.PrimaryKeyConstraint('id')
    )

    # Invoices
    op.create_table('invoices',
        _id(),
        sa.Column('invoice_number', sa.String(20), nullable=False),
        _fk('customer_id', nullable=False),
        _fk('property_id'),
        _fk('service_schedule_id'),
        sa.Column('invoice_date', sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column('due_date', sa.Date(), nullable=False),
        _money('subtotal'),
        _money('tax_amount'),
        _money('total'),
        _money('amount_paid'),
        _money('balance'),
        sa.Column('status', sa.String(20), default='pending'),
        sa.Column('payment_date', sa.Date()),
        sa.Column('payment_method', sa.String(20)),
        sa.Column('payment_terms', sa.Integer()),
        sa.Column('tax_exempt', sa.Boolean(), default=False),
        sa.Column('notes', sa.Text()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id']),
        sa.ForeignKeyConstraint(['service_schedule_id'], ['service_schedules.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number'),
        sa.CheckConstraint('amount_paid <= total', name='ck_invoices_amount_paid')
    )
    op.create_index('ix_invoices_customer', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_foreign_key('fk_service_schedules_invoice', 'service_schedules', 'invoices',
                          ['invoice_id'], ['id'])

    op.create_table('invoice_items',
        _id(),
        _fk('invoice_id', nullable=False),
        _fk('service_schedule_id'),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('quantity', sa.Float(), default=1),
        _money('unit_price'),
        sa.Column('tax_rate', sa.Numeric(5, 4), default=0),
        _money('tax_amount'),
        _money('subtotal'),
        _money('total'),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_schedule_id'], ['service_schedules.id']),
        sa.PrimaryKeyConstraint('id')
    )

    # Messaging
    op.create_table('message_providers',
        _id(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('type', sa.String(10), nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('settings', postgresql.JSONB, default={}),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('messages',
        _id(),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('subject', sa.String(255)),
        sa.Column('content', sa.Text(), nullable=False),
        _fk('sent_by'),
        sa.Column('sent_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('status', sa.String(20), default='pending'),
        sa.Column('extra_data', postgresql.JSONB, default={}),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.ForeignKeyConstraint(['sent_by'], ['user_profiles.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_messages_sent_at', 'messages', ['sent_at'])
    op.create_index('ix_messages_sent_by', 'messages', ['sent_by'])

    op.create_table('message_recipients',
        _id(),
        _fk('message_id', nullable=False),
        _fk('customer_id'),
        sa.Column('recipient_name', sa.String(255)),
        sa.Column('recipient_email', sa.String(255)),
        sa.Column('recipient_phone', sa.String(20)),
        sa.Column('status', sa.String(20), default='pending'),
        sa.Column('sent_at', sa.DateTime()),
        sa.Column('delivered_at', sa.DateTime()),
        sa.Column('error_message', sa.Text()),
        sa.ForeignKeyConstraint(['message_id'], ['messages.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('message_logs',
        _id(),
        _fk('provider_id'),
        sa.Column('message_type', sa.String(30), nullable=False),
        sa.Column('recipient', sa.String(255), nullable=False),
        sa.Column('subject', sa.String(255)),
        sa.Column('content', sa.Text()),
        sa.Column('status', sa.String(20), default='sent'),
        sa.Column('error', sa.Text()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.ForeignKeyConstraint(['provider_id'], ['message_providers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )

    # Event log table (audit trail)
    op.create_table('event_log',
        _id(),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('actor_type', sa.String(20), default='system'),
        _fk('actor_id'),
        sa.Column('entity_type', sa.String(50), nullable=False),
        _fk('entity_id'),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('extra_data', postgresql.JSONB, default={}),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_event_log_entity', 'event_log', ['entity_type', 'entity_id'])
    op.create_index('ix_event_log_timestamp', 'event_log', ['timestamp'])


def downgrade() -> None:
    # Drop tables in reverse order of creation (respecting foreign keys)
    op.drop_table('event_log')
    op.drop_table('message_logs')
    op.drop_table('message_recipients')
    op.drop_table('messages')
    op.drop_table('message_providers')
    op.drop_table('invoice_items')
    op.drop_constraint('fk_service_schedules_invoice', 'service_schedules', type_='foreignkey')
    op.drop_table('invoices')
    op.drop_table('estimate_items')
    op.drop_table('estimates')
    op.drop_table('crew_assignments')
    op.drop_table('service_schedule_instances')
    op.drop_table('service_schedules')
    op.drop_table('crew_members')
    op.drop_table('crews')
    op.drop_table('technicians')
    op.drop_table('tax_configurations')
    op.drop_table('service_types')
    op.drop_table('properties')
    op.drop_table('customers')
    op.drop_table('user_profiles')
