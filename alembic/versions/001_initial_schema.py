"""001 Initial schema - bookings, ledger, reviews, settings, webhook events

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

- booking_events carries the unique (booking_id, event_type, dedupe_key)
  index used for idempotent side effects
- stripe_webhook_events dedupes deliveries by Stripe event id
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # 1. Users
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # 2. Bookings
    op.create_table(
        'bookings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('reference_code', sa.String(16), nullable=False),
        sa.Column('user_id', sa.String(36),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=False),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('travel_date', sa.Date(), nullable=True),
        sa.Column('passengers_count', sa.Integer(), server_default='1'),
        sa.Column('large_suitcases', sa.Integer(), server_default='0'),
        sa.Column('pickup_location', sa.String(500), nullable=True),
        sa.Column('dropoff_location', sa.String(500), nullable=True),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('total_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deposit_choice', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('booking_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='unpaid'),
        sa.Column('public_view_token', sa.String(64), nullable=False),
        sa.Column('stripe_deposit_session_id', sa.String(255), nullable=True),
        sa.Column('stripe_deposit_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('stripe_balance_session_id', sa.String(255), nullable=True),
        sa.Column('stripe_balance_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('refund_reason', sa.String(255), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('last_action_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('amount_paid >= 0 AND remaining_amount >= 0', name='ck_booking_amounts_non_negative'),
    )
    op.create_index('ix_booking_reference_code', 'bookings', ['reference_code'], unique=True)
    op.create_index('ix_booking_user', 'bookings', ['user_id'])
    op.create_index('ix_booking_status', 'bookings', ['booking_status', 'payment_status'])
    op.create_index('ix_booking_deposit_intent', 'bookings', ['stripe_deposit_payment_intent_id'])
    op.create_index('ix_booking_balance_intent', 'bookings', ['stripe_balance_payment_intent_id'])

    # 3. Booking items
    op.create_table(
        'booking_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('booking_id', sa.String(36),
                  sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_type', sa.String(20), nullable=False),
        sa.Column('item_id', sa.String(36), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=True),
        sa.Column('vehicle_selection', sa.JSON(), nullable=True),
        sa.Column('vehicle_rates', sa.JSON(), nullable=True),
        sa.Column('subtotal_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pickup_location', sa.String(500), nullable=True),
        sa.Column('dropoff_location', sa.String(500), nullable=True),
        sa.Column('travel_date', sa.Date(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('pickup_time', sa.String(10), nullable=True),
        sa.Column('passengers_count', sa.Integer(), server_default='1'),
        sa.Column('large_suitcases', sa.Integer(), server_default='0'),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_booking_item_booking', 'booking_items', ['booking_id'])

    # 4. Booking events (ledger + timeline)
    op.create_table(
        'booking_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('booking_id', sa.String(36),
                  sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('event_payload', sa.JSON(), nullable=True),
        sa.Column('dedupe_key', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        'ux_booking_event_dedupe',
        'booking_events',
        ['booking_id', 'event_type', 'dedupe_key'],
        unique=True
    )
    op.create_index('ix_booking_event_timeline', 'booking_events', ['booking_id', 'created_at'])

    # 5. Review requests + reviews
    op.create_table(
        'review_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('booking_id', sa.String(36),
                  sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ux_review_request_token', 'review_requests', ['token'], unique=True)
    op.create_index('ix_review_request_booking', 'review_requests', ['booking_id'])

    op.create_table(
        'reviews',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('booking_id', sa.String(36),
                  sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('booking_item_id', sa.String(36),
                  sa.ForeignKey('booking_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('display_name', sa.String(100), nullable=True),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_review_rating_range'),
    )
    op.create_index('ix_review_booking', 'reviews', ['booking_id'])
    op.create_index('ix_review_moderation', 'reviews', ['is_approved', 'is_featured'])

    # 6. App settings (single row)
    op.create_table(
        'app_settings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('singleton_key', sa.String(20), nullable=False, server_default='default'),
        sa.Column('business_name', sa.String(200), nullable=True),
        sa.Column('support_email', sa.String(255), nullable=True),
        sa.Column('support_phone', sa.String(50), nullable=True),
        sa.Column('admin_notify_email', sa.String(255), nullable=True),
        sa.Column('timezone', sa.String(64), server_default='Asia/Tokyo'),
        sa.Column('email_toggles', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ux_app_settings_singleton', 'app_settings', ['singleton_key'], unique=True)

    # 7. Stripe webhook events
    op.create_table(
        'stripe_webhook_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('booking_id', sa.String(36), nullable=True),
        sa.Column('status', sa.String(20), server_default='processed'),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ux_stripe_webhook_event_id', 'stripe_webhook_events', ['event_id'], unique=True)
    op.create_index('ix_stripe_webhook_booking', 'stripe_webhook_events', ['booking_id'])


def downgrade():
    op.drop_index('ix_stripe_webhook_booking', table_name='stripe_webhook_events')
    op.drop_index('ux_stripe_webhook_event_id', table_name='stripe_webhook_events')
    op.drop_table('stripe_webhook_events')

    op.drop_index('ux_app_settings_singleton', table_name='app_settings')
    op.drop_table('app_settings')

    op.drop_index('ix_review_moderation', table_name='reviews')
    op.drop_index('ix_review_booking', table_name='reviews')
    op.drop_table('reviews')

    op.drop_index('ix_review_request_booking', table_name='review_requests')
    op.drop_index('ux_review_request_token', table_name='review_requests')
    op.drop_table('review_requests')

    op.drop_index('ix_booking_event_timeline', table_name='booking_events')
    op.drop_index('ux_booking_event_dedupe', table_name='booking_events')
    op.drop_table('booking_events')

    op.drop_index('ix_booking_item_booking', table_name='booking_items')
    op.drop_table('booking_items')

    op.drop_index('ix_booking_balance_intent', table_name='bookings')
    op.drop_index('ix_booking_deposit_intent', table_name='bookings')
    op.drop_index('ix_booking_status', table_name='bookings')
    op.drop_index('ix_booking_user', table_name='bookings')
    op.drop_index('ix_booking_reference_code', table_name='bookings')
    op.drop_table('bookings')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
