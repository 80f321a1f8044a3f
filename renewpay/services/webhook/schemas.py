"""Inbound notification and provider payload schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from renewpay.common.errors import InvalidRequest


class NotificationStatus(str, Enum):
    """Payment lifecycle statuses this webhook reacts to."""

    PAID = "Paid"
    CANCELLED = "Cancelled"


class Notification(BaseModel):
    """Validated webhook payload."""

    payment_id: str = Field(min_length=1)
    status: NotificationStatus


def validate_notification(payload: Any) -> Notification:
    """Extract `payment_id` and `status`, raising `InvalidRequest` on bad input."""

    if not isinstance(payload, dict):
        raise InvalidRequest("request body must be a JSON object")
    payment_id = payload.get("payment_id")
    status = payload.get("status")
    if not payment_id or not status:
        raise InvalidRequest("missing required fields: payment_id, status")
    if not isinstance(payment_id, str) or not isinstance(status, str):
        raise InvalidRequest("payment_id and status must be strings")
    if status not in {s.value for s in NotificationStatus}:
        raise InvalidRequest(f"invalid status: {status}")
    return Notification(payment_id=payment_id, status=NotificationStatus(status))


def parse_amount(raw: Any) -> Any:
    """Read the payment total from either provider amount shape.

    Current responses nest it as `{"total": n}`; older ones send a flat number.
    """

    if isinstance(raw, dict):
        raw = raw.get("total")
    if raw is None or isinstance(raw, bool):
        return 0
    return raw


class PaymentDetail(BaseModel):
    """Authoritative payment details fetched from the provider."""

    payment_id: str
    amount: int = Field(ge=0)
    billing_key: str | None = None
    order_name: str | None = None
    customer_id: str | None = None

    @classmethod
    def from_provider(cls, body: Any, fallback_payment_id: str) -> "PaymentDetail":
        """Build from a `GET /payments/{id}` body; raises ValueError when malformed."""

        if not isinstance(body, dict):
            raise ValueError("payment detail must be a JSON object")
        customer = body.get("customer")
        return cls(
            payment_id=body.get("paymentId") or fallback_payment_id,
            amount=parse_amount(body.get("amount")),
            billing_key=body.get("billingKey"),
            order_name=body.get("orderName"),
            customer_id=customer.get("id") if isinstance(customer, dict) else None,
        )


def format_instant(value: datetime) -> str:
    """ISO-8601 UTC instant with millisecond precision and a `Z` suffix."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ScheduleRequest(BaseModel):
    """Future charge registration derived from a recorded payment."""

    schedule_id: str
    billing_key: str | None = None
    order_name: str | None = None
    customer_id: str | None = None
    amount: int = Field(ge=0)
    currency: str = "KRW"
    time_to_pay: datetime

    def to_body(self) -> dict[str, Any]:
        return {
            "payment": {
                "billingKey": self.billing_key,
                "orderName": self.order_name,
                "customer": {"id": self.customer_id},
                "amount": {"total": self.amount},
                "currency": self.currency,
            },
            "timeToPay": format_instant(self.time_to_pay),
        }


class ScheduleOutcome(BaseModel):
    """Result of a next-charge registration. `ok=False` is a warning, not an error."""

    ok: bool
    status_code: int | None = None
    details: Any = None
