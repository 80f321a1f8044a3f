"""Webhook orchestration for subscription payments.

Sequences validation, provider lookup, billing window computation, record
insert and next-charge registration. Fatal failures end the run in `FAILED`
and map to an error reply; a failed next-charge registration only adds a
warning because the payment is already collected and recorded.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from renewpay.common.errors import ConfigurationMissing, InvalidRequest, UnexpectedFailure, WebhookError
from renewpay.common.logging import logger, payment_id_ctx
from renewpay.common.metrics import schedule_failures_total, webhook_outcomes_total, webhook_requests_total
from renewpay.common.state_machine import (
    ALLOWED_TRANSITIONS,
    COMPUTING_WINDOW,
    DONE,
    FAILED,
    FETCHING_DETAIL,
    PERSISTING,
    SCHEDULING,
    VALIDATING,
    validate_transition,
)
from renewpay.services.webhook.billing import compute_billing_window
from renewpay.services.webhook.models import PaymentRecord
from renewpay.services.webhook.provider import PortOneClient
from renewpay.services.webhook.repository import PaymentRecordWriter
from renewpay.services.webhook.schemas import (
    NotificationStatus,
    PaymentDetail,
    ScheduleOutcome,
    ScheduleRequest,
    validate_notification,
)

PAID = "Paid"


class WebhookRun:
    """Tracks one notification's progress through the state machine."""

    def __init__(self) -> None:
        self.state = VALIDATING
        self.transitions: list[tuple[str, str]] = []

    def advance(self, new_state: str) -> None:
        validate_transition(self.state, new_state)
        self.transitions.append((self.state, new_state))
        logger.info("webhook transition %s -> %s", self.state, new_state)
        self.state = new_state

    def fail(self) -> None:
        if FAILED in ALLOWED_TRANSITIONS.get(self.state, set()):
            self.advance(FAILED)


@dataclass
class WebhookResult:
    """Outcome of one notification; `body()` is the JSON reply."""

    success: bool
    state: str
    error: WebhookError | None = None
    record: PaymentRecord | None = None
    schedule: ScheduleOutcome | None = None
    warnings: list[str] = field(default_factory=list)
    transitions: list[tuple[str, str]] = field(default_factory=list)

    @property
    def status_code(self) -> int:
        return self.error.status_code if self.error else 200

    def body(self) -> dict[str, Any]:
        if self.error:
            return self.error.to_body()
        return {"success": True}


class WebhookOrchestrator:
    """Owns the notification-to-scheduled-renewal flow.

    Collaborators are injected so tests can substitute the store, the provider,
    the clock, the randomness source and the schedule id factory.
    """

    def __init__(
        self,
        writer: PaymentRecordWriter,
        provider: PortOneClient,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        service_name: str = "portone-webhook",
    ) -> None:
        self.writer = writer
        self.provider = provider
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.id_factory = id_factory or (lambda: str(uuid4()))
        self.service_name = service_name

    async def handle(self, payload: Any) -> WebhookResult:
        """Process one notification. Never raises; failures are in the result."""

        run = WebhookRun()
        try:
            result = await self._process(payload, run)
        except WebhookError as exc:
            result = self._failed(run, exc)
        except Exception as exc:
            logger.exception("unexpected webhook failure: %s", exc)
            result = self._failed(run, UnexpectedFailure("internal server error"))
        outcome = "ok" if result.success else type(result.error).__name__
        if result.success and result.warnings:
            outcome = "ok_with_warnings"
        webhook_outcomes_total.labels(service=self.service_name, outcome=outcome).inc()
        return result

    def _failed(self, run: WebhookRun, error: WebhookError) -> WebhookResult:
        failed_at = run.state
        run.fail()
        if isinstance(error, InvalidRequest):
            logger.warning("webhook rejected: %s", error.message)
        else:
            logger.error(
                "webhook failed state=%s error=%s status=%s",
                failed_at,
                error.message,
                error.status_code,
            )
        return WebhookResult(success=False, state=run.state, error=error, transitions=run.transitions)

    async def _process(self, payload: Any, run: WebhookRun) -> WebhookResult:
        notification = validate_notification(payload)
        payment_id_ctx.set(notification.payment_id)
        webhook_requests_total.labels(service=self.service_name, status=notification.status.value).inc()
        # Checked ahead of the status branch, so Cancelled also needs the secret.
        if not self.provider.configured:
            raise ConfigurationMissing("PORTONE_API_SECRET is not configured")

        if notification.status is NotificationStatus.CANCELLED:
            logger.info("cancelled notification acknowledged without changes")
            run.advance(DONE)
            return WebhookResult(success=True, state=run.state, transitions=run.transitions)

        run.advance(FETCHING_DETAIL)
        detail = await self.provider.fetch_payment(notification.payment_id)

        run.advance(COMPUTING_WINDOW)
        window = compute_billing_window(self.clock(), self.rng)
        record = PaymentRecord(
            transaction_key=detail.payment_id,
            amount=detail.amount,
            status=PAID,
            start_at=window.start_at,
            end_at=window.end_at,
            end_grace_at=window.end_grace_at,
            next_schedule_at=window.next_schedule_at,
            next_schedule_id=self.id_factory(),
        )

        run.advance(PERSISTING)
        self.writer.insert(record)
        logger.info(
            "payment recorded transaction_key=%s amount=%s next_schedule_at=%s",
            record.transaction_key,
            record.amount,
            record.next_schedule_at.isoformat(),
        )

        run.advance(SCHEDULING)
        schedule = await self._schedule(detail, record)
        warnings = []
        if not schedule.ok:
            schedule_failures_total.labels(service=self.service_name).inc()
            warnings.append(
                f"next charge not scheduled (schedule_id={record.next_schedule_id}, "
                f"status={schedule.status_code}); payment is recorded"
            )
            logger.warning(
                "next charge scheduling failed but payment is recorded transaction_key=%s schedule_id=%s",
                record.transaction_key,
                record.next_schedule_id,
            )
        else:
            logger.info("next charge scheduled schedule_id=%s", record.next_schedule_id)

        run.advance(DONE)
        return WebhookResult(
            success=True,
            state=run.state,
            record=record,
            schedule=schedule,
            warnings=warnings,
            transitions=run.transitions,
        )

    async def _schedule(self, detail: PaymentDetail, record: PaymentRecord) -> ScheduleOutcome:
        try:
            request = ScheduleRequest(
                schedule_id=record.next_schedule_id,
                billing_key=detail.billing_key,
                order_name=detail.order_name,
                customer_id=detail.customer_id,
                amount=detail.amount,
                currency=self.provider.currency,
                time_to_pay=record.next_schedule_at,
            )
            return await self.provider.schedule_payment(request)
        except Exception as exc:
            # Recorded payments must still be acknowledged.
            logger.exception("next charge scheduling raised schedule_id=%s", record.next_schedule_id)
            return ScheduleOutcome(ok=False, details=str(exc))
