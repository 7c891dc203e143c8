"""initial availability schema

Revision ID: a1f4c2d9e7b3
Revises:
Create Date: 2026-10-19 09:12:44.201733

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a1f4c2d9e7b3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)
TIMESTAMPTZ = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Upgrade schema."""

    # btree_gist lets the exclusion constraint mix "=" on calendar_id with "&&" on ranges
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # 1. Tenants and calendars
    op.create_table(
        'businesses',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('timezone', sa.String(50), nullable=False, server_default='UTC'),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('updated_at', TIMESTAMPTZ, server_default=sa.text('now()')),
    )

    op.create_table(
        'calendars',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('business_id', UUID, sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(200), nullable=False, unique=True),
        sa.Column('timezone', sa.String(50), nullable=False, server_default='UTC'),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('updated_at', TIMESTAMPTZ, server_default=sa.text('now()')),
    )
    op.create_index('ix_calendars_business_id', 'calendars', ['business_id'])

    op.create_table(
        'calendar_settings',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', UUID, sa.ForeignKey('calendars.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('slot_duration', sa.Integer, nullable=False, server_default='30'),
        sa.Column('buffer_time', sa.Integer, nullable=False, server_default='0'),
        sa.Column('minimum_notice_hours', sa.Integer, nullable=False, server_default='0'),
        sa.Column('booking_window_days', sa.Integer, nullable=False, server_default='60'),
        sa.Column('max_bookings_per_day', sa.Integer, nullable=True),
        sa.Column('allow_waitlist', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('confirmation_required', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('allow_cancellations', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('cancellation_deadline_hours', sa.Integer, nullable=False, server_default='0'),
        sa.Column('updated_at', TIMESTAMPTZ, server_default=sa.text('now()')),
    )

    # 2. Schedule store
    op.create_table(
        'availability_schedules',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', UUID, sa.ForeignKey('calendars.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_default', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
    )
    op.create_index('ix_availability_schedules_calendar_id', 'availability_schedules', ['calendar_id'])
    # One default schedule per calendar
    op.create_index(
        'uq_availability_schedules_default',
        'availability_schedules',
        ['calendar_id'],
        unique=True,
        postgresql_where=sa.text('is_default'),
    )

    op.create_table(
        'availability_rules',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('schedule_id', UUID, sa.ForeignKey('availability_schedules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('end_time', sa.Time, nullable=False),
        sa.Column('is_available', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_availability_rules_day_of_week'),
    )
    op.create_index('ix_availability_rules_schedule_id', 'availability_rules', ['schedule_id'])

    op.create_table(
        'availability_overrides',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', UUID, sa.ForeignKey('calendars.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('is_available', sa.Boolean, nullable=False),
        sa.Column('start_time', sa.Time, nullable=True),
        sa.Column('end_time', sa.Time, nullable=True),
        sa.Column('reason', sa.String, nullable=True),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.UniqueConstraint('calendar_id', 'date', name='uq_availability_overrides_calendar_date'),
    )
    op.create_index('ix_availability_overrides_calendar_id', 'availability_overrides', ['calendar_id'])

    op.create_table(
        'recurring_patterns',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', UUID, sa.ForeignKey('calendars.id', ondelete='CASCADE'), nullable=False),
        sa.Column('pattern_type', sa.String(20), nullable=False),
        sa.Column('pattern_name', sa.String(200), nullable=False),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('schedule_data', postgresql.JSONB, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('updated_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.CheckConstraint(
            "pattern_type IN ('weekly', 'biweekly', 'monthly', 'seasonal')",
            name='ck_recurring_patterns_type',
        ),
    )
    op.create_index('ix_recurring_patterns_calendar_id', 'recurring_patterns', ['calendar_id'])

    op.create_table(
        'service_types',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', UUID, sa.ForeignKey('calendars.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('duration', sa.Integer, nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('preparation_time', sa.Integer, nullable=False, server_default='0'),
        sa.Column('cleanup_time', sa.Integer, nullable=False, server_default='0'),
        sa.Column('max_attendees', sa.Integer, nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('updated_at', TIMESTAMPTZ, server_default=sa.text('now()')),
    )
    op.create_index('ix_service_types_calendar_id', 'service_types', ['calendar_id'])
    op.create_index('ix_service_types_is_active', 'service_types', ['is_active'])

    # 3. Bookings
    op.create_table(
        'bookings',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', UUID, sa.ForeignKey('calendars.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_type_id', UUID, sa.ForeignKey('service_types.id'), nullable=False),
        sa.Column('waitlist_entry_id', UUID, nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=False),
        sa.Column('customer_email', sa.String(320), nullable=True),
        sa.Column('customer_phone', sa.String(32), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('start_time', TIMESTAMPTZ, nullable=False),
        sa.Column('end_time', TIMESTAMPTZ, nullable=False),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('payment_confirmed', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('booking_source', sa.String(20), server_default='web'),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('updated_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('confirmed_at', TIMESTAMPTZ, nullable=True),
        sa.Column('completed_at', TIMESTAMPTZ, nullable=True),
        sa.Column('cancelled_at', TIMESTAMPTZ, nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.CheckConstraint('end_time > start_time', name='ck_bookings_time_order'),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed', 'no-show')",
            name='ck_bookings_status',
        ),
    )
    op.create_index('ix_bookings_calendar_start', 'bookings', ['calendar_id', 'start_time'])
    op.create_index(
        'uq_bookings_calendar_active_start',
        'bookings',
        ['calendar_id', 'start_time'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'confirmed')"),
    )
    # No two active bookings of a calendar may overlap, whatever the writer does
    op.execute(
        """
        ALTER TABLE bookings
        ADD CONSTRAINT ex_bookings_no_overlap
        EXCLUDE USING gist (
            calendar_id WITH =,
            tstzrange(start_time, end_time, '[)') WITH &&
        )
        WHERE (status IN ('pending', 'confirmed'))
        """
    )

    # 4. Waitlist
    op.create_table(
        'waitlist_entries',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('calendar_id', UUID, sa.ForeignKey('calendars.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_type_id', UUID, sa.ForeignKey('service_types.id'), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=False),
        sa.Column('customer_email', sa.String(320), nullable=True),
        sa.Column('preferred_date', sa.Date, nullable=False),
        sa.Column('preferred_time_start', sa.Time, nullable=True),
        sa.Column('preferred_time_end', sa.Time, nullable=True),
        sa.Column('flexibility', sa.String(20), nullable=False, server_default='anytime'),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('booking_id', UUID, nullable=True),
        sa.Column('notified_by_event_id', UUID, nullable=True, unique=True),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('notified_at', TIMESTAMPTZ, nullable=True),
        sa.Column('expires_at', TIMESTAMPTZ, nullable=True),
    )
    op.create_index(
        'ix_waitlist_calendar_date_status', 'waitlist_entries', ['calendar_id', 'preferred_date', 'status']
    )

    # 5. Outbox and webhooks
    op.create_table(
        'domain_events',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('business_id', UUID, nullable=False),
        sa.Column('calendar_id', UUID, nullable=False),
        sa.Column('aggregate_id', UUID, nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('payload', postgresql.JSONB, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('dispatched_at', TIMESTAMPTZ, nullable=True),
    )
    op.create_index('ix_domain_events_status_created', 'domain_events', ['status', 'created_at'])

    op.create_table(
        'webhook_endpoints',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('business_id', UUID, sa.ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('url', sa.String(500), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('enabled_events', postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column('secret', sa.String(128), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('consecutive_failures', sa.Integer, server_default='0'),
        sa.Column('last_success_at', TIMESTAMPTZ, nullable=True),
        sa.Column('last_failure_at', TIMESTAMPTZ, nullable=True),
        sa.Column('last_failure_reason', sa.String(500), nullable=True),
        sa.Column('max_consecutive_failures', sa.Integer, server_default='10'),
        sa.Column('auto_disabled_at', TIMESTAMPTZ, nullable=True),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('updated_at', TIMESTAMPTZ, server_default=sa.text('now()')),
    )
    op.create_index('ix_webhook_endpoints_business_active', 'webhook_endpoints', ['business_id', 'is_active'])

    op.create_table(
        'webhook_deliveries',
        sa.Column('id', UUID, primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('webhook_endpoint_id', UUID, sa.ForeignKey('webhook_endpoints.id', ondelete='CASCADE'), nullable=False),
        sa.Column('domain_event_id', UUID, sa.ForeignKey('domain_events.id', ondelete='CASCADE'), nullable=True),
        sa.Column('business_id', UUID, nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('event_data', postgresql.JSONB, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempts', sa.Integer, server_default='0'),
        sa.Column('max_attempts', sa.Integer, server_default='5'),
        sa.Column('response_status_code', sa.Integer, nullable=True),
        sa.Column('response_body', sa.Text, nullable=True),
        sa.Column('response_time_ms', sa.Integer, nullable=True),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('last_attempt_at', TIMESTAMPTZ, nullable=True),
        sa.Column('next_retry_at', TIMESTAMPTZ, nullable=True),
        sa.Column('created_at', TIMESTAMPTZ, server_default=sa.text('now()')),
        sa.Column('delivered_at', TIMESTAMPTZ, nullable=True),
        sa.Column('failed_at', TIMESTAMPTZ, nullable=True),
    )
    op.create_index('ix_webhook_deliveries_status', 'webhook_deliveries', ['status', 'next_retry_at'])
    op.create_index(
        'ix_webhook_deliveries_endpoint_status', 'webhook_deliveries', ['webhook_endpoint_id', 'status']
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('webhook_deliveries')
    op.drop_table('webhook_endpoints')
    op.drop_table('domain_events')
    op.drop_table('waitlist_entries')
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS ex_bookings_no_overlap")
    op.drop_table('bookings')
    op.drop_table('service_types')
    op.drop_table('recurring_patterns')
    op.drop_table('availability_overrides')
    op.drop_table('availability_rules')
    op.drop_table('availability_schedules')
    op.drop_table('calendar_settings')
    op.drop_table('calendars')
    op.drop_table('businesses')
