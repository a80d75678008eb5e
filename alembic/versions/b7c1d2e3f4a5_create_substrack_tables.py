"""Create merchant billing tables

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'b7c1d2e3f4a5'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # merchants (id is the Supabase Auth user id)
    op.create_table('merchants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('business_name', sa.String(length=255), nullable=True),
        sa.Column('gst_number', sa.String(length=50), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('logo_url', sa.String(length=1024), nullable=True),
        sa.Column('redirect_url', sa.String(length=1024), nullable=True),
        sa.Column('stripe_secret_key', sa.String(length=255), nullable=True),
        sa.Column('stripe_publishable_key', sa.String(length=255), nullable=True),
        sa.Column('stripe_webhook_secret', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_merchants_id'), 'merchants', ['id'], unique=False)

    op.create_table('subscription_plans',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('merchant_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('billing_cycle', sa.Enum('DAILY', 'WEEKLY', 'MONTHLY', 'QUARTERLY', 'YEARLY', name='billingcycle'), nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('stripe_product_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_price_id', sa.String(length=255), nullable=True),
        sa.Column('subscriber_count', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscription_plans_id'), 'subscription_plans', ['id'], unique=False)
    op.create_index(op.f('ix_subscription_plans_merchant_id'), 'subscription_plans', ['merchant_id'], unique=False)

    op.create_table('subscribers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('merchant_id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Uuid(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'CANCELLED', 'FAILED', name='subscriberstatus'), nullable=False),
        sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('next_renewal_date', sa.DateTime(), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(), nullable=True),
        sa.Column('last_payment_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['subscription_plans.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscribers_id'), 'subscribers', ['id'], unique=False)
    op.create_index(op.f('ix_subscribers_merchant_id'), 'subscribers', ['merchant_id'], unique=False)
    op.create_index(op.f('ix_subscribers_plan_id'), 'subscribers', ['plan_id'], unique=False)
    op.create_index(op.f('ix_subscribers_stripe_subscription_id'), 'subscribers', ['stripe_subscription_id'], unique=True)

    op.create_table('payment_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('merchant_id', sa.Uuid(), nullable=False),
        sa.Column('subscriber_id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('status', sa.Enum('SUCCESS', 'FAILED', 'PENDING', name='paymentstatus'), nullable=False),
        sa.Column('stripe_payment_id', sa.String(length=255), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id']),
        sa.ForeignKeyConstraint(['subscriber_id'], ['subscribers.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['subscription_plans.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payment_transactions_id'), 'payment_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_payment_transactions_merchant_id'), 'payment_transactions', ['merchant_id'], unique=False)
    op.create_index(op.f('ix_payment_transactions_subscriber_id'), 'payment_transactions', ['subscriber_id'], unique=False)
    # Payment dedup
    op.create_index(op.f('ix_payment_transactions_stripe_payment_id'), 'payment_transactions', ['stripe_payment_id'], unique=True)

    op.create_table('access_tokens',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('merchant_id', sa.Uuid(), nullable=False),
        sa.Column('subscriber_id', sa.Uuid(), nullable=False),
        sa.Column('token', sa.Text(), nullable=False),
        sa.Column('stripe_session_id', sa.String(length=255), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id']),
        sa.ForeignKeyConstraint(['subscriber_id'], ['subscribers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_access_tokens_id'), 'access_tokens', ['id'], unique=False)
    op.create_index(op.f('ix_access_tokens_merchant_id'), 'access_tokens', ['merchant_id'], unique=False)
    op.create_index(op.f('ix_access_tokens_subscriber_id'), 'access_tokens', ['subscriber_id'], unique=False)
    op.create_index(op.f('ix_access_tokens_stripe_session_id'), 'access_tokens', ['stripe_session_id'], unique=True)

    # Webhook audit / idempotency
    op.create_table('stripe_webhooks',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('merchant_id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=True),
        sa.Column('object_id', sa.String(length=255), nullable=True),
        sa.Column('webhook_timestamp', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_stripe_webhooks_id'), 'stripe_webhooks', ['id'], unique=False)
    op.create_index(op.f('ix_stripe_webhooks_event_id'), 'stripe_webhooks', ['event_id'], unique=True)
    op.create_index(op.f('ix_stripe_webhooks_merchant_id'), 'stripe_webhooks', ['merchant_id'], unique=False)
    op.create_index(op.f('ix_stripe_webhooks_object_id'), 'stripe_webhooks', ['object_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_stripe_webhooks_object_id'), table_name='stripe_webhooks')
    op.drop_index(op.f('ix_stripe_webhooks_merchant_id'), table_name='stripe_webhooks')
    op.drop_index(op.f('ix_stripe_webhooks_event_id'), table_name='stripe_webhooks')
    op.drop_index(op.f('ix_stripe_webhooks_id'), table_name='stripe_webhooks')
    op.drop_table('stripe_webhooks')

    op.drop_index(op.f('ix_access_tokens_stripe_session_id'), table_name='access_tokens')
    op.drop_index(op.f('ix_access_tokens_subscriber_id'), table_name='access_tokens')
    op.drop_index(op.f('ix_access_tokens_merchant_id'), table_name='access_tokens')
    op.drop_index(op.f('ix_access_tokens_id'), table_name='access_tokens')
    op.drop_table('access_tokens')

    op.drop_index(op.f('ix_payment_transactions_stripe_payment_id'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_subscriber_id'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_merchant_id'), table_name='payment_transactions')
    op.drop_index(op.f('ix_payment_transactions_id'), table_name='payment_transactions')
    op.drop_table('payment_transactions')

    op.drop_index(op.f('ix_subscribers_stripe_subscription_id'), table_name='subscribers')
    op.drop_index(op.f('ix_subscribers_plan_id'), table_name='subscribers')
    op.drop_index(op.f('ix_subscribers_merchant_id'), table_name='subscribers')
    op.drop_index(op.f('ix_subscribers_id'), table_name='subscribers')
    op.drop_table('subscribers')

    op.drop_index(op.f('ix_subscription_plans_merchant_id'), table_name='subscription_plans')
    op.drop_index(op.f('ix_subscription_plans_id'), table_name='subscription_plans')
    op.drop_table('subscription_plans')

    op.drop_index(op.f('ix_merchants_id'), table_name='merchants')
    op.drop_table('merchants')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS paymentstatus')
    op.execute('DROP TYPE IF EXISTS subscriberstatus')
    op.execute('DROP TYPE IF EXISTS billingcycle')
