"""Shared HTTP plumbing for the live rail adapters.

Every call goes through ``_request``, which applies the configured timeout
and turns transport errors, timeouts and 4xx/5xx replies into a
``ProviderResponse`` with ``ok=False``. Timeouts, transport errors and 5xx
are retryable; 4xx means the provider rejected the request.
"""

import time
from dataclasses import dataclass, field

import httpx

from payments.config import PaymentSettings
from payments.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProviderResponse:
    ok: bool
    data: dict = field(default_factory=dict)
    failure_reason: str | None = None
    retryable: bool = False


def generate_payment_reference(prefix: str, order_id: str, now: float | None = None) -> str:
    """Rail prefix + first 8 chars of the order id + last 7 digits of the epoch millis."""
    short_id = str(order_id).replace("-", "")[:8].upper()
    millis = str(int((time.time() if now is None else now) * 1000))
    return f"{prefix}{short_id}{millis[-7:]}"


def _failure_reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Provider returned HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
        if body.get("message"):
            return str(body["message"])
    return f"Provider returned HTTP {response.status_code}"


class HttpGatewayMixin:
    """Owns an ``httpx.Client`` and normalises provider responses."""

    provider = "unknown"

    def __init__(
        self,
        settings: PaymentSettings,
        base_url: str,
        headers: dict | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        self._client = client or httpx.Client(
            base_url=base_url,
            headers=headers or {},
            timeout=settings.gateway_timeout,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, json: dict | None = None) -> ProviderResponse:
        try:
            response = self._client.request(method, path, json=json)
        except httpx.TimeoutException:
            logger.warning("gateway_failure", provider=self.provider, path=path, reason="timeout")
            return ProviderResponse(ok=False, failure_reason="Payment provider timed out", retryable=True)
        except httpx.HTTPError as exc:
            logger.warning("gateway_failure", provider=self.provider, path=path, reason=str(exc))
            return ProviderResponse(ok=False, failure_reason="Payment provider unreachable", retryable=True)

        if response.status_code >= 400:
            reason = _failure_reason(response)
            logger.warning(
                "gateway_failure",
                provider=self.provider,
                path=path,
                status_code=response.status_code,
                reason=reason,
            )
            return ProviderResponse(ok=False, failure_reason=reason, retryable=response.status_code >= 500)

        try:
            data = response.json() if response.content else {}
        except ValueError:
            return ProviderResponse(ok=False, failure_reason="Provider returned invalid JSON", retryable=True)
        return ProviderResponse(ok=True, data=data if isinstance(data, dict) else {})
