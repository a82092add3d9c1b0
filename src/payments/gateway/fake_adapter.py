"""Configurable fake payment gateway for development and testing.

Simulates every rail without external calls. It can be configured at runtime
to succeed, fail, time out or report a given provider status, which makes it
useful for:
- Automated tests with predictable outcomes
- Local development without provider credentials (PAYMENTS_GATEWAY_MODE=fake)

``status_hook`` runs inside ``fetch_status`` before the result is returned,
so tests can interleave a second operation at the point where a real
provider call would suspend.
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from payments.gateway.http_adapter import generate_payment_reference
from payments.gateway.port import CancellationResult, CreationResult, PaymentGateway, RefundResult, StatusResult
from payments.payment.details import PaymentDetails


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    provider = "fake"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Payment rejected by provider"
        self.timeout: bool = False
        self.provider_status: str = "pending"
        self.status_hook: Callable[[object], None] | None = None
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Payment rejected by provider",
        timeout: bool = False,
        provider_status: str | None = None,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.timeout = timeout
        if provider_status is not None:
            self.provider_status = provider_status

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def _failure(self) -> tuple[str, bool]:
        if self.timeout:
            return "Payment provider timed out", True
        return self.failure_reason, False

    def create_payment(self, details: PaymentDetails, order) -> CreationResult:
        self.calls.append(
            {
                "method": "create_payment",
                "payment_method": details.method.value,
                "order_id": str(order.id),
                "amount": details.amount,
            }
        )

        if self.timeout or not self.should_succeed:
            reason, retryable = self._failure()
            return CreationResult(success=False, failure_reason=reason, retryable=retryable)

        reference = generate_payment_reference("FAKE", str(order.id))
        return CreationResult(
            success=True,
            provider_payment_id=f"fake_{details.method.value}_{uuid4().hex[:12]}",
            provider_reference=reference,
            provider_status="pending",
            instructions={
                "type": details.method.value,
                "reference": reference,
                "amount": details.amount,
                "message": "Fake payment created. Deliver a webhook to settle it.",
            },
            expires_at=datetime.now(UTC) + timedelta(days=7),
        )

    def fetch_status(self, payment) -> StatusResult:
        self.calls.append({"method": "fetch_status", "provider_payment_id": payment.provider_payment_id})

        if self.status_hook is not None:
            hook, self.status_hook = self.status_hook, None
            hook(payment)

        if self.timeout or not self.should_succeed:
            reason, retryable = self._failure()
            return StatusResult(success=False, failure_reason=reason, retryable=retryable)
        return StatusResult(success=True, provider_status=self.provider_status)

    def cancel_payment(self, payment) -> CancellationResult:
        self.calls.append({"method": "cancel_payment", "provider_payment_id": payment.provider_payment_id})

        if self.timeout or not self.should_succeed:
            reason, retryable = self._failure()
            return CancellationResult(success=False, failure_reason=reason, retryable=retryable)
        return CancellationResult(success=True, provider_status="cancelled")

    def refund_payment(self, payment, amount: float, reason: str) -> RefundResult:
        self.calls.append(
            {
                "method": "refund_payment",
                "provider_payment_id": payment.provider_payment_id,
                "amount": amount,
                "reason": reason,
            }
        )

        if self.timeout or not self.should_succeed:
            failure, retryable = self._failure()
            return RefundResult(success=False, failure_reason=failure, retryable=retryable)
        return RefundResult(success=True, provider_refund_id=f"fake_ref_{uuid4().hex[:12]}")
