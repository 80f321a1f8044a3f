"""Shared fixtures: in-memory store and a fake PortOne API."""

import os

os.environ.setdefault("POSTGRES_DSN", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("OTEL_ENABLED", "false")

import random
from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from renewpay.common.db import Base
from renewpay.services.webhook.models import PaymentRecord  # noqa: F401  (registers table)
from renewpay.services.webhook.provider import PortOneClient
from renewpay.services.webhook.repository import PaymentRecordWriter
from renewpay.services.webhook.service import WebhookOrchestrator

PORTONE_URL = "https://api.portone.test"
REFERENCE_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)
RNG_SEED = 7


class FakePortOne:
    """Programmable PortOne stand-in served through `httpx.MockTransport`."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.payment_status = 200
        self.payment_body = {
            "paymentId": "pay_1",
            "amount": {"total": 9900},
            "billingKey": "bk_1",
            "orderName": "Plan A",
            "customer": {"id": "cust_1"},
        }
        self.schedule_status = 200
        self.schedule_body = {"schedule": {"id": "sch_1"}}
        self.raise_on: dict[str, Exception] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method in self.raise_on:
            raise self.raise_on[request.method]
        if request.method == "GET":
            return httpx.Response(self.payment_status, json=self.payment_body)
        return httpx.Response(self.schedule_status, json=self.schedule_body)

    def of(self, method: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method]


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def fake_portone() -> FakePortOne:
    return FakePortOne()


@pytest.fixture
def provider(fake_portone) -> PortOneClient:
    return PortOneClient(
        secret="test-secret",
        base_url=PORTONE_URL,
        transport=httpx.MockTransport(fake_portone),
    )


@pytest.fixture
def orchestrator(session_factory, provider) -> WebhookOrchestrator:
    return WebhookOrchestrator(
        PaymentRecordWriter(session_factory),
        provider,
        rng=random.Random(RNG_SEED),
        clock=lambda: REFERENCE_NOW,
    )
