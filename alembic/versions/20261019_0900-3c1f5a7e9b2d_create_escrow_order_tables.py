"""create_escrow_order_tables

Revision ID: 3c1f5a7e9b2d
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f5a7e9b2d'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'service_plans',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('freelancer_id', sa.String(length=36), nullable=False, comment='owning freelancer'),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_service_plans_freelancer_id', 'service_plans', ['freelancer_id'], unique=False)

    op.create_table(
        'service_plan_tiers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('service_plan_id', sa.String(length=36), nullable=False),
        sa.Column('tier', sa.String(length=20), nullable=False, comment='basic/standard/premium'),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('delivery_days', sa.Integer(), nullable=False),
        sa.Column('revisions', sa.Integer(), server_default='0', nullable=False),
        sa.ForeignKeyConstraint(['service_plan_id'], ['service_plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('service_plan_id', 'tier', name='uq_service_plan_tiers_plan_tier'),
    )
    op.create_index('ix_service_plan_tiers_service_plan_id', 'service_plan_tiers', ['service_plan_id'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('client_id', sa.String(length=36), nullable=False),
        sa.Column('freelancer_id', sa.String(length=36), nullable=False),
        sa.Column('service_plan_id', sa.String(length=36), nullable=False),
        sa.Column('plan_tier', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=30), server_default='pending_acceptance', nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('platform_commission', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('gst_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('delivery_days', sa.Integer(), nullable=False),
        sa.Column('revisions_allowed', sa.Integer(), server_default='0', nullable=False),
        sa.Column('revisions_used', sa.Integer(), server_default='0', nullable=False),
        sa.Column('requirements', sa.Text(), server_default='', nullable=False),
        sa.Column('requirement_files', sa.JSON(), nullable=False),
        sa.Column('requirement_links', sa.JSON(), nullable=False),
        sa.Column('delivery_files', sa.JSON(), nullable=False),
        sa.Column('delivery_links', sa.JSON(), nullable=False),
        sa.Column('delivery_message', sa.Text(), nullable=True),
        sa.Column('accept_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('gateway_order_id', sa.String(length=100), nullable=True, comment='gateway checkout order id'),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('revisions_used <= revisions_allowed', name='ck_orders_revision_quota'),
        sa.ForeignKeyConstraint(['service_plan_id'], ['service_plans.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gateway_order_id'),
    )
    op.create_index('ix_orders_client_id', 'orders', ['client_id'], unique=False)
    op.create_index('ix_orders_freelancer_id', 'orders', ['freelancer_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)
    # deadline sweeps filter on status first
    op.create_index('ix_orders_status_accept_deadline', 'orders', ['status', 'accept_deadline'], unique=False)
    op.create_index('ix_orders_status_payment_deadline', 'orders', ['status', 'payment_deadline'], unique=False)

    op.create_table(
        'delivery_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False, comment='delivered/revision_requested'),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('delivery_files', sa.JSON(), nullable=False),
        sa.Column('delivery_links', sa.JSON(), nullable=False),
        sa.Column('revision_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'version', name='uq_delivery_history_order_version'),
    )
    op.create_index('ix_delivery_history_order_id', 'delivery_history', ['order_id'], unique=False)

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('client_id', sa.String(length=36), nullable=False),
        sa.Column('freelancer_id', sa.String(length=36), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False, comment='captured total'),
        sa.Column('status', sa.String(length=20), server_default='captured', nullable=False, comment='captured/refunded/failed'),
        sa.Column('gateway_payment_id', sa.String(length=100), nullable=True),
        sa.Column('platform_fee', sa.Numeric(precision=12, scale=2), server_default='0', nullable=False),
        sa.Column('gst_amount', sa.Numeric(precision=12, scale=2), server_default='0', nullable=False),
        sa.Column('freelancer_amount', sa.Numeric(precision=12, scale=2), server_default='0', nullable=False),
        sa.Column('transferred_to_freelancer', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('transfer_pending_manual', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('external_transfer_id', sa.String(length=200), nullable=True),
        sa.Column('transfer_failure_reason', sa.Text(), nullable=True),
        sa.Column('transferred_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_status', sa.String(length=20), server_default='none', nullable=False, comment='none/processed/failed'),
        sa.Column('refund_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('refund_id', sa.String(length=100), nullable=True),
        sa.Column('refund_failure_reason', sa.Text(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            'NOT (transferred_to_freelancer AND transfer_pending_manual)',
            name='ck_payments_single_payout_state',
        ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gateway_payment_id'),
    )
    op.create_index('ix_payments_id', 'payments', ['id'], unique=False)
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=True)
    op.create_index('ix_payments_client_id', 'payments', ['client_id'], unique=False)
    op.create_index('ix_payments_freelancer_id', 'payments', ['freelancer_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_transfer_pending_manual', 'payments', ['transfer_pending_manual'], unique=False)
    op.create_index('ix_payments_external_transfer_id', 'payments', ['external_transfer_id'], unique=False)
    op.create_index('ix_payments_refund_status', 'payments', ['refund_status'], unique=False)
    op.create_index('ix_payments_refund_id', 'payments', ['refund_id'], unique=False)
    op.create_index('ix_payments_created_at', 'payments', ['created_at'], unique=False)
    op.create_index(
        'ix_payments_manual_queue', 'payments', ['transfer_pending_manual', 'transferred_to_freelancer'], unique=False
    )

    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=36), nullable=False, comment='user id'),
        sa.Column('full_name', sa.String(length=200), nullable=True),
        sa.Column('role', sa.String(length=20), server_default='client', nullable=False),
        sa.Column('account_holder_name', sa.String(length=200), nullable=True),
        sa.Column('account_number', sa.String(length=34), nullable=True),
        sa.Column('ifsc', sa.String(length=11), nullable=True),
        sa.Column('upi_id', sa.String(length=100), nullable=True),
        sa.Column('linked_account_id', sa.String(length=100), nullable=True, comment='gateway route account'),
        sa.Column('total_earnings', sa.Numeric(precision=14, scale=2), server_default='0', nullable=False),
        sa.Column('total_spent', sa.Numeric(precision=14, scale=2), server_default='0', nullable=False),
        sa.Column('completed_orders', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'chat_rooms',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('client_id', sa.String(length=36), nullable=False),
        sa.Column('freelancer_id', sa.String(length=36), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('closes_at', sa.DateTime(timezone=True), nullable=True, comment='read-only after this instant'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('context', sa.JSON(), nullable=True),
        sa.Column('read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'], unique=False)
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_notifications_created_at', table_name='notifications')
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('chat_rooms')
    op.drop_table('profiles')
    op.drop_index('ix_payments_manual_queue', table_name='payments')
    op.drop_index('ix_payments_created_at', table_name='payments')
    op.drop_index('ix_payments_refund_id', table_name='payments')
    op.drop_index('ix_payments_refund_status', table_name='payments')
    op.drop_index('ix_payments_external_transfer_id', table_name='payments')
    op.drop_index('ix_payments_transfer_pending_manual', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_freelancer_id', table_name='payments')
    op.drop_index('ix_payments_client_id', table_name='payments')
    op.drop_index('ix_payments_order_id', table_name='payments')
    op.drop_index('ix_payments_id', table_name='payments')
    op.drop_table('payments')
    op.drop_index('ix_delivery_history_order_id', table_name='delivery_history')
    op.drop_table('delivery_history')
    op.drop_index('ix_orders_status_payment_deadline', table_name='orders')
    op.drop_index('ix_orders_status_accept_deadline', table_name='orders')
    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_freelancer_id', table_name='orders')
    op.drop_index('ix_orders_client_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_service_plan_tiers_service_plan_id', table_name='service_plan_tiers')
    op.drop_table('service_plan_tiers')
    op.drop_index('ix_service_plans_freelancer_id', table_name='service_plans')
    op.drop_table('service_plans')
