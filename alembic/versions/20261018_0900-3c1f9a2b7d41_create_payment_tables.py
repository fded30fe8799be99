"""create_payment_tables

Revision ID: 3c1f9a2b7d41
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f9a2b7d41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'teams',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('leader_id', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft',
                  comment='draft/submitted/pending/approved/rejected'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending',
                  comment='pending/paid/failed'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_teams_leader_id', 'teams', ['leader_id'], unique=False)
    op.create_index('ix_teams_event_id', 'teams', ['event_id'], unique=False)

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Payment id (uuid4)'),
        sa.Column('user_id', sa.String(length=64), nullable=False, comment='Owning user (identity provider subject)'),
        sa.Column('team_id', sa.String(length=64), nullable=False),
        sa.Column('event_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='ISO-4217'),
        sa.Column('payment_method', sa.String(length=32), nullable=False, comment='razorpay/cashfree'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending',
                  comment='pending/authorized/paid/completed/failed/expired'),
        sa.Column('transaction_id', sa.String(length=128), nullable=True, comment='Latest gateway reference'),
        sa.Column('gateway_order_id', sa.String(length=128), nullable=True, comment='Gateway order id, fixed once set'),
        sa.Column('gateway_payment_id', sa.String(length=128), nullable=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True, comment='Raw gateway payload, audit only'),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('authorized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gateway_order_id', name='uq_payments_gateway_order_id'),
    )
    op.create_index('ix_payments_user_id', 'payments', ['user_id'], unique=False)
    op.create_index('ix_payments_team_id', 'payments', ['team_id'], unique=False)
    op.create_index('ix_payments_event_id', 'payments', ['event_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'], unique=False)
    op.create_index('ix_payments_gateway_payment_id', 'payments', ['gateway_payment_id'], unique=False)
    op.create_index('ix_payments_user_event', 'payments', ['user_id', 'event_id'], unique=False)
    op.create_index('ix_payments_status_created', 'payments', ['status', 'created_at'], unique=False)
    # At most one open (pending or authorized) attempt per (team, event)
    op.create_index(
        'uq_payments_team_event_open',
        'payments',
        ['team_id', 'event_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'authorized')"),
    )

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_key', sa.String(length=128), nullable=False, comment='Delivery id header or sha256 of body'),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_key', name='uq_webhook_events_event_key'),
    )


def downgrade() -> None:
    op.drop_table('webhook_events')

    op.drop_index('uq_payments_team_event_open', table_name='payments')
    op.drop_index('ix_payments_status_created', table_name='payments')
    op.drop_index('ix_payments_user_event', table_name='payments')
    op.drop_index('ix_payments_gateway_payment_id', table_name='payments')
    op.drop_index('ix_payments_transaction_id', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_event_id', table_name='payments')
    op.drop_index('ix_payments_team_id', table_name='payments')
    op.drop_index('ix_payments_user_id', table_name='payments')
    op.drop_table('payments')

    op.drop_index('ix_teams_event_id', table_name='teams')
    op.drop_index('ix_teams_leader_id', table_name='teams')
    op.drop_table('teams')
