"""create_orders_and_device_tokens

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c2a9d7e10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.TEXT(), nullable=False),
        sa.Column('customer_id', sa.TEXT(), nullable=True),
        sa.Column('vendor_id', sa.TEXT(), nullable=True),
        sa.Column('status', sa.TEXT(), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.TEXT(), nullable=True),
        sa.Column('payment_id', sa.TEXT(), nullable=True),
        sa.Column('payment_amount', sa.BIGINT(), nullable=True),
        sa.Column('payment_currency', sa.TEXT(), nullable=True),
        sa.Column('paid_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('failed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.TEXT(), nullable=True),
        sa.Column('version', sa.BIGINT(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_orders_status', 'orders', ['status'])
    op.create_index('idx_orders_customer', 'orders', ['customer_id'])

    op.create_table(
        'device_tokens',
        sa.Column('user_id', sa.TEXT(), nullable=False),
        sa.Column('token', sa.TEXT(), nullable=False),
        sa.Column('platform', sa.TEXT(), nullable=True),
        sa.Column('is_active', sa.BOOLEAN(), nullable=False, server_default=sa.true()),
        sa.Column('registered_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deactivated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('deactivation_reason', sa.TEXT(), nullable=True),
        sa.PrimaryKeyConstraint('user_id', 'token'),
    )
    op.create_index('idx_device_tokens_user_active', 'device_tokens', ['user_id', 'is_active'])


def downgrade() -> None:
    op.drop_index('idx_device_tokens_user_active', table_name='device_tokens')
    op.drop_table('device_tokens')
    op.drop_index('idx_orders_customer', table_name='orders')
    op.drop_index('idx_orders_status', table_name='orders')
    op.drop_table('orders')
