"""initial webhook schema

Revision ID: 0001_webhook
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_webhook"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "payment",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("transaction_key", sa.String(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_grace_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("next_schedule_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("next_schedule_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("next_schedule_id"),
        sa.CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),
    )
    op.create_index("ix_payment_transaction_key", "payment", ["transaction_key"], unique=True)
    op.create_index("ix_payment_status", "payment", ["status"])
    op.create_index("ix_payment_next_schedule_at", "payment", ["next_schedule_at"])


def downgrade() -> None:
    op.drop_index("ix_payment_next_schedule_at", table_name="payment")
    op.drop_index("ix_payment_status", table_name="payment")
    op.drop_index("ix_payment_transaction_key", table_name="payment")
    op.drop_table("payment")
