"""add_orders_payment_event_id

Revision ID: 8b2e4d61c0f3
Revises: 3f1c2a9d7e10
Create Date: 2026-10-19 15:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8b2e4d61c0f3'
down_revision = '3f1c2a9d7e10'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Event that recorded the payment outcome; NULL for orders settled before this column
    op.add_column('orders', sa.Column('payment_event_id', sa.TEXT(), nullable=True))


def downgrade() -> None:
    op.drop_column('orders', 'payment_event_id')
