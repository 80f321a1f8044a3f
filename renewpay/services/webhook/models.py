"""Webhook service database models.

One row per completed subscription payment. Rows are insert-only: the unique
`transaction_key` is the only cross-request coordination point.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from renewpay.common.db import Base


class PaymentRecord(Base):
    """Billing window and next-charge reference of one paid subscription period."""

    __tablename__ = "payment"
    __table_args__ = (CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    transaction_key: Mapped[str] = mapped_column(String, unique=True, index=True)
    amount: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String, index=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_grace_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    next_schedule_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    next_schedule_id: Mapped[str] = mapped_column(String, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
