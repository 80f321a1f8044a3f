"""PortOne payments API client.

Covers the two provider calls the webhook needs: the authoritative payment
lookup (fatal on failure) and the next-charge registration (never raises).
"""

from typing import Any
from urllib.parse import quote

import httpx

from renewpay.common.errors import ConfigurationMissing, UpstreamLookupFailed
from renewpay.common.logging import logger
from renewpay.common.metrics import provider_request_seconds
from renewpay.services.webhook.schemas import PaymentDetail, ScheduleOutcome, ScheduleRequest


def _error_body(resp: httpx.Response) -> Any:
    """Decode a provider error body, falling back to raw text."""

    try:
        return resp.json()
    except ValueError:
        return resp.text


class PortOneClient:
    """Authenticated PortOne client with a lazily created connection pool."""

    def __init__(
        self,
        secret: str | None,
        base_url: str = "https://api.portone.io",
        timeout: float = 10.0,
        currency: str = "KRW",
        transport: httpx.AsyncBaseTransport | None = None,
        service_name: str = "portone-webhook",
    ) -> None:
        self.secret = secret
        self.base_url = base_url
        self.timeout = timeout
        self.currency = currency
        self.transport = transport
        self.service_name = service_name
        self._client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self.secret)

    def require_secret(self) -> None:
        if not self.configured:
            raise ConfigurationMissing("PORTONE_API_SECRET is not configured")

    async def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"PortOne {self.secret}",
        }

    async def fetch_payment(self, payment_id: str) -> PaymentDetail:
        """Look up one payment; raise `UpstreamLookupFailed` on any provider failure."""

        self.require_secret()
        client = await self.client()
        with provider_request_seconds.labels(service=self.service_name, operation="fetch_payment").time():
            try:
                resp = await client.get(f"/payments/{quote(payment_id, safe='')}", headers=self._headers())
            except httpx.TimeoutException as exc:
                logger.error("portone payment lookup timed out payment_id=%s", payment_id)
                raise UpstreamLookupFailed("payment lookup timed out", status_code=504, details=str(exc)) from exc
            except httpx.HTTPError as exc:
                logger.error("portone payment lookup unreachable payment_id=%s error=%s", payment_id, exc)
                raise UpstreamLookupFailed("payment lookup failed", status_code=502, details=str(exc)) from exc

        if not resp.is_success:
            details = _error_body(resp)
            logger.error(
                "portone payment lookup failed payment_id=%s status=%s details=%s",
                payment_id,
                resp.status_code,
                details,
            )
            raise UpstreamLookupFailed("payment lookup failed", status_code=resp.status_code, details=details)

        try:
            return PaymentDetail.from_provider(resp.json(), fallback_payment_id=payment_id)
        except ValueError as exc:
            logger.error("portone payment detail malformed payment_id=%s error=%s", payment_id, exc)
            raise UpstreamLookupFailed("payment detail is malformed", status_code=502, details=str(exc)) from exc

    async def schedule_payment(self, request: ScheduleRequest) -> ScheduleOutcome:
        """Register a future charge. Failures come back as `ok=False`, never raised."""

        if not self.configured:
            return ScheduleOutcome(ok=False, details="PORTONE_API_SECRET is not configured")
        client = await self.client()
        with provider_request_seconds.labels(service=self.service_name, operation="schedule_payment").time():
            try:
                resp = await client.post(
                    f"/payments/{quote(request.schedule_id, safe='')}/schedule",
                    headers=self._headers(),
                    json=request.to_body(),
                )
            except httpx.HTTPError as exc:
                logger.warning("portone schedule request failed schedule_id=%s error=%s", request.schedule_id, exc)
                return ScheduleOutcome(ok=False, details=str(exc) or exc.__class__.__name__)

        if not resp.is_success:
            details = _error_body(resp)
            logger.warning(
                "portone schedule rejected schedule_id=%s status=%s details=%s",
                request.schedule_id,
                resp.status_code,
                details,
            )
            return ScheduleOutcome(ok=False, status_code=resp.status_code, details=details)
        return ScheduleOutcome(ok=True, status_code=resp.status_code)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
