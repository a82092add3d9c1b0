"""Payment aggregate (CQRS): one attempt to settle an Order on one rail.

State is stored directly (not event sourced); every change raises a domain
event. Protean advances the aggregate ``_version`` on every save, so
concurrent writers are detected at save time instead of being serialised
by a lock.

State Machine:
    PENDING → PROCESSING → COMPLETED | FAILED | CANCELLED
    PENDING → COMPLETED | FAILED | CANCELLED
    COMPLETED → REFUNDED
    FAILED, CANCELLED, REFUNDED are terminal

Re-applying the current status, or any status from a terminal state, is a
no-op: providers redeliver and reorder callbacks.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text

from payments.domain import payments
from payments.errors import InvalidStateTransitionError
from payments.payment.details import PaymentDetails, PaymentMethodType, from_wire, masked_wire
from payments.payment.events import (
    PaymentCancelled,
    PaymentCreated,
    PaymentRefunded,
    PaymentStatusChanged,
)
from payments.security.vault import CredentialVault


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),  # Terminal
    PaymentStatus.CANCELLED: set(),  # Terminal
    PaymentStatus.REFUNDED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset(status for status, targets in _VALID_TRANSITIONS.items() if not targets)

# A payment in one of these states blocks creating another for the same order
OPEN_STATUSES = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.REFUNDED}
)

CANCELLABLE_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING})


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@payments.aggregate
class Payment:
    user_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(max_length=3, default="AUD")
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_method = String(max_length=20, choices=PaymentMethodType, required=True)
    payment_details = Text()  # Vault-encrypted JSON of the rail's detail payload

    # Provider identifiers, also mirrored into metadata for display
    provider = String(max_length=50)
    provider_payment_id = String(max_length=255)
    provider_reference = String(max_length=255)
    metadata_json = Text()  # JSON object

    receipt_email = String(max_length=254)
    receipt_url = String(max_length=500)

    cancellation_reason = String(max_length=500)
    refund_reason = String(max_length=500)
    refund_amount = Float()


    created_at = DateTime()
    updated_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()
    refunded_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def amount_must_be_positive(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({"amount": ["Payment amount must be greater than 0"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id: str,
        order_id: str,
        details: PaymentDetails,
        amount: float,
        currency: str,
        vault: CredentialVault,
        provider: str,
        provider_payment_id: str | None,
        provider_reference: str | None,
        metadata: dict | None = None,
        receipt_email: str | None = None,
        receipt_url: str | None = None,
    ) -> "Payment":
        now = datetime.now(UTC)
        merged = dict(metadata or {})
        merged["provider"] = provider
        if provider_payment_id:
            merged["providerPaymentId"] = provider_payment_id
        if provider_reference:
            merged["providerReference"] = provider_reference

        payment = cls(
            user_id=user_id,
            order_id=order_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            payment_method=details.method.value,
            payment_details=vault.encrypt_json(details.to_wire()),
            provider=provider,
            provider_payment_id=provider_payment_id,
            provider_reference=provider_reference,
            metadata_json=json.dumps(merged),
            receipt_email=receipt_email,
            receipt_url=receipt_url,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentCreated(
                payment_id=str(payment.id),
                order_id=str(order_id),
                user_id=str(user_id),
                amount=amount,
                currency=currency,
                payment_method=details.method.value,
                provider_payment_id=provider_payment_id,
                provider_reference=provider_reference,
                created_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Details and metadata
    # -------------------------------------------------------------------
    def open_details(self, vault: CredentialVault) -> PaymentDetails:
        return from_wire(PaymentMethodType(self.payment_method), vault.decrypt_json(self.payment_details))

    def masked_details(self, vault: CredentialVault) -> dict:
        return masked_wire(self.open_details(vault))

    def get_metadata(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}

    def merge_metadata(self, updates: dict) -> None:
        merged = self.get_metadata()
        merged.update(updates)
        self.metadata_json = json.dumps(merged)
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def can_transition(self, target_status: PaymentStatus) -> bool:
        return target_status in _VALID_TRANSITIONS.get(PaymentStatus(self.status), set())

    def _assert_can_transition(self, target_status: PaymentStatus) -> None:
        current = PaymentStatus(self.status)
        if not self.can_transition(target_status):
            raise InvalidStateTransitionError(
                f"Cannot transition payment from {current.value} to {target_status.value}",
                current_status=current.value,
            )

    def transition_to(self, target_status: PaymentStatus, source: str) -> bool:
        """Move to ``target_status`` if the state machine allows it.

        Returns False, without touching the aggregate, for same-status and
        unreachable transitions.
        """
        if not self.can_transition(target_status):
            return False

        previous = self.status
        now = datetime.now(UTC)
        self.status = target_status.value
        self.updated_at = now
        if target_status == PaymentStatus.COMPLETED:
            self.completed_at = now
        elif target_status == PaymentStatus.CANCELLED:
            self.cancelled_at = now
        elif target_status == PaymentStatus.REFUNDED:
            self.refunded_at = now

        self.raise_(
            PaymentStatusChanged(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                previous_status=previous,
                new_status=target_status.value,
                source=source,
                changed_at=now,
            )
        )
        return True

    def cancel(self, reason: str | None, actor: str) -> None:
        """Cancel a payment that has not settled. Caller confirms with the provider first."""
        self._assert_can_transition(PaymentStatus.CANCELLED)
        now = datetime.now(UTC)
        self.cancellation_reason = reason
        self.merge_metadata(
            {
                "cancellation": {
                    "reason": reason,
                    "cancelledBy": actor,
                    "cancelledAt": now.isoformat(),
                }
            }
        )
        self.transition_to(PaymentStatus.CANCELLED, source="cancel")
        self.raise_(
            PaymentCancelled(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                cancelled_by=actor,
                cancelled_at=now,
            )
        )

    def check_refund(self, amount: float | None) -> float:
        """Validate a refund request and return the amount that would be refunded."""
        self._assert_can_transition(PaymentStatus.REFUNDED)
        refund_amount = self.amount if amount is None else amount
        if not 0 < refund_amount <= self.amount:
            raise ValidationError({"amount": [f"Refund amount must be between 0 and {self.amount:.2f}"]})
        return refund_amount

    def refund(self, amount: float | None, reason: str, actor: str) -> None:
        """Refund a completed payment. Partial amounts are recorded; the payment still ends refunded."""
        refund_amount = self.check_refund(amount)

        now = datetime.now(UTC)
        self.refund_amount = refund_amount
        self.refund_reason = reason
        self.merge_metadata(
            {
                "refund": {
                    "amount": refund_amount,
                    "reason": reason,
                    "refundedBy": actor,
                    "refundedAt": now.isoformat(),
                }
            }
        )
        self.transition_to(PaymentStatus.REFUNDED, source="refund")
        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                amount=refund_amount,
                reason=reason,
                refunded_by=actor,
                refunded_at=now,
            )
        )

    @property
    def is_terminal(self) -> bool:
        return PaymentStatus(self.status) in TERMINAL_STATUSES
