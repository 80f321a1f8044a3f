"""End-to-end orchestration tests with a fake provider and in-memory store."""

import asyncio
import json
import random
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy import func, select, text

from renewpay.common.errors import PersistenceFailed
from renewpay.services.webhook.models import PaymentRecord
from renewpay.services.webhook.provider import PortOneClient
from renewpay.services.webhook.repository import PaymentRecordWriter
from renewpay.services.webhook.service import WebhookOrchestrator

from conftest import PORTONE_URL, REFERENCE_NOW, RNG_SEED

PAID = {"payment_id": "pay_1", "status": "Paid"}


def _count(session_factory) -> int:
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(PaymentRecord)).scalar_one()


def test_paid_notification_records_and_schedules(orchestrator, fake_portone, session_factory):
    """Paid flow persists the window and registers the next charge."""

    result = asyncio.run(orchestrator.handle(PAID))

    assert result.success
    assert result.status_code == 200
    assert result.body() == {"success": True}
    assert result.state == "DONE"
    assert result.warnings == []

    record = result.record
    expected_minute = random.Random(RNG_SEED).randrange(60)
    assert record.transaction_key == "pay_1"
    assert record.amount == 9900
    assert record.status == "Paid"
    assert record.start_at == REFERENCE_NOW
    assert record.end_at == datetime(2024, 1, 31, tzinfo=timezone.utc)
    assert record.end_grace_at == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert record.next_schedule_at == datetime(2024, 2, 1, 10, expected_minute, tzinfo=timezone.utc)
    assert _count(session_factory) == 1

    schedule = fake_portone.of("POST")[0]
    assert schedule.url.path == f"/payments/{record.next_schedule_id}/schedule"
    body = json.loads(schedule.content)
    assert body["payment"] == {
        "billingKey": "bk_1",
        "orderName": "Plan A",
        "customer": {"id": "cust_1"},
        "amount": {"total": 9900},
        "currency": "KRW",
    }
    assert body["timeToPay"] == f"2024-02-01T10:{expected_minute:02d}:00.000Z"


def test_transitions_follow_paid_path(orchestrator):
    """Paid runs visit every step in order."""

    result = asyncio.run(orchestrator.handle(PAID))

    assert [new for _, new in result.transitions] == [
        "FETCHING_DETAIL",
        "COMPUTING_WINDOW",
        "PERSISTING",
        "SCHEDULING",
        "DONE",
    ]


def test_invalid_payload_touches_nothing(orchestrator, fake_portone, session_factory):
    """Invalid input causes no network or storage side effects."""

    result = asyncio.run(orchestrator.handle({"payment_id": "pay_1", "status": "Refunded"}))

    assert result.status_code == 400
    assert result.body()["success"] is False
    assert result.state == "FAILED"
    assert fake_portone.requests == []
    assert _count(session_factory) == 0


def test_cancelled_is_a_no_op(orchestrator, fake_portone, session_factory):
    """Cancelled notifications are acknowledged without side effects."""

    result = asyncio.run(orchestrator.handle({"payment_id": "pay_1", "status": "Cancelled"}))

    assert result.body() == {"success": True}
    assert result.transitions == [("VALIDATING", "DONE")]
    assert fake_portone.requests == []
    assert _count(session_factory) == 0


def test_missing_secret_is_configuration_error(session_factory, fake_portone):
    """Missing credential is a 500 before any provider call."""

    provider = PortOneClient(secret=None, base_url=PORTONE_URL, transport=httpx.MockTransport(fake_portone))
    orchestrator = WebhookOrchestrator(PaymentRecordWriter(session_factory), provider)

    result = asyncio.run(orchestrator.handle(PAID))

    assert result.status_code == 500
    assert result.body()["error"] == "PORTONE_API_SECRET is not configured"
    assert fake_portone.requests == []


def test_lookup_failure_mirrors_status_and_persists_nothing(orchestrator, fake_portone, session_factory):
    """A failed lookup stores nothing and schedules nothing."""

    fake_portone.payment_status = 401
    fake_portone.payment_body = {"type": "UNAUTHORIZED"}

    result = asyncio.run(orchestrator.handle(PAID))

    assert result.status_code == 401
    assert result.body() == {
        "success": False,
        "error": "payment lookup failed",
        "details": {"type": "UNAUTHORIZED"},
    }
    assert result.state == "FAILED"
    assert fake_portone.of("POST") == []
    assert _count(session_factory) == 0


def test_duplicate_transaction_key_is_rejected(orchestrator, fake_portone, session_factory):
    """Second delivery of the same payment loses the insert race."""

    first = asyncio.run(orchestrator.handle(PAID))
    second = asyncio.run(orchestrator.handle(PAID))

    assert first.success
    assert not second.success
    assert second.status_code == 500
    assert second.error.conflict
    assert second.body()["details"]
    assert _count(session_factory) == 1
    # The losing delivery never reaches scheduling.
    assert len(fake_portone.of("POST")) == 1


def test_schedule_failure_still_acknowledges(orchestrator, fake_portone, session_factory):
    """Schedule rejection after a persisted payment still replies success."""

    fake_portone.schedule_status = 500
    fake_portone.schedule_body = {"message": "boom"}

    result = asyncio.run(orchestrator.handle(PAID))

    assert result.body() == {"success": True}
    assert result.state == "DONE"
    assert result.schedule.ok is False
    assert len(result.warnings) == 1
    assert result.record.next_schedule_id in result.warnings[0]
    assert _count(session_factory) == 1
    assert len(fake_portone.of("POST")) == 1


def test_schedule_ids_are_fresh_per_record(session_factory, provider, fake_portone):
    """Each recorded payment gets its own schedule id."""

    orchestrator = WebhookOrchestrator(PaymentRecordWriter(session_factory), provider)

    ids = set()
    for n in range(3):
        fake_portone.payment_body = dict(fake_portone.payment_body, paymentId=f"pay_{n}")
        result = asyncio.run(orchestrator.handle({"payment_id": f"pay_{n}", "status": "Paid"}))
        record = result.record
        assert record.next_schedule_at.hour == 10
        assert record.next_schedule_at.date() == (record.end_at + timedelta(days=1)).date()
        ids.add(record.next_schedule_id)
    assert len(ids) == 3


def test_transaction_key_falls_back_to_notification_id(orchestrator, fake_portone):
    """Without a provider paymentId the inbound id keys the record."""

    fake_portone.payment_body = {"amount": 4900, "billingKey": "bk_2", "orderName": "Plan B", "customer": {"id": "c"}}

    result = asyncio.run(orchestrator.handle({"payment_id": "pay_77", "status": "Paid"}))

    assert result.record.transaction_key == "pay_77"
    assert result.record.amount == 4900


def test_unexpected_error_becomes_server_error(session_factory, provider):
    """Unclassified exceptions become a well-formed 500 reply."""

    def broken_clock():
        raise RuntimeError("clock unavailable")

    orchestrator = WebhookOrchestrator(PaymentRecordWriter(session_factory), provider, clock=broken_clock)

    result = asyncio.run(orchestrator.handle(PAID))

    assert result.status_code == 500
    assert result.body() == {"success": False, "error": "internal server error"}
    assert result.state == "FAILED"
    assert _count(session_factory) == 0


def test_store_failure_aborts_before_scheduling(orchestrator, fake_portone, session_factory):
    """A non-conflict store error is fatal and the next charge is never registered."""

    with session_factory() as db:
        db.execute(text("DROP TABLE payment"))
        db.commit()

    result = asyncio.run(orchestrator.handle(PAID))

    assert isinstance(result.error, PersistenceFailed)
    assert result.status_code == 500
    assert result.error.conflict is False
    assert result.state == "FAILED"
    assert fake_portone.of("POST") == []
    # Only the driver message is returned, not the statement or its parameters.
    assert "INSERT INTO" not in result.body()["details"]
    assert "pay_1" not in result.body()["details"]


def test_unbuildable_schedule_request_is_non_fatal(orchestrator, provider, fake_portone, session_factory):
    """A recorded payment is acknowledged even if the schedule request cannot be built."""

    provider.currency = None

    result = asyncio.run(orchestrator.handle(PAID))

    assert result.body() == {"success": True}
    assert result.state == "DONE"
    assert result.schedule.ok is False
    assert len(result.warnings) == 1
    assert fake_portone.of("POST") == []
    assert _count(session_factory) == 1
