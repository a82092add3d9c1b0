"""Payment gateway port (abstract interface).

Defines the contract that every rail adapter implements. Provider failures,
timeouts included, come back as ``success=False`` results rather than
exceptions, so callers handle all four rails the same way.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from payments.payment.details import PaymentDetails
from payments.payment.payment import PaymentStatus
from payments.payment.status_map import map_provider_status


@dataclass(frozen=True)
class CreationResult:
    """Result of creating a payment with the provider."""

    success: bool
    provider_payment_id: str | None = None
    provider_reference: str | None = None
    provider_status: str | None = None
    instructions: dict = field(default_factory=dict)
    redirect_url: str | None = None
    expires_at: datetime | None = None
    failure_reason: str | None = None
    retryable: bool = False


@dataclass(frozen=True)
class StatusResult:
    """Authoritative status reported by the provider."""

    success: bool
    provider_status: str | None = None
    failure_reason: str | None = None
    retryable: bool = False

    @property
    def status(self) -> PaymentStatus:
        return map_provider_status(self.provider_status)


@dataclass(frozen=True)
class CancellationResult:
    success: bool
    provider_status: str | None = None
    failure_reason: str | None = None
    retryable: bool = False


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    provider_refund_id: str | None = None
    failure_reason: str | None = None
    retryable: bool = False


class PaymentGateway(ABC):
    """Abstract payment gateway interface. One concrete strategy per rail."""

    provider: str = "unknown"

    @abstractmethod
    def create_payment(self, details: PaymentDetails, order) -> CreationResult:
        """Create the payment with the provider for ``order``."""
        ...

    @abstractmethod
    def fetch_status(self, payment) -> StatusResult:
        """Query the provider for the payment's current status."""
        ...

    @abstractmethod
    def cancel_payment(self, payment) -> CancellationResult:
        """Ask the provider to cancel the payment."""
        ...

    def refund_payment(self, payment, amount: float, reason: str) -> RefundResult:
        """Return funds for a settled payment.

        Push rails (BPAY, PayID, bank transfer) are refunded by manual transfer,
        so the default only records the refund.
        """
        return RefundResult(success=True)
