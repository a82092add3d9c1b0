"""Webhook audit trail.

Every provider callback, matched or not, valid or not, leaves exactly one
``WebhookEvent``. Records are written once and never changed; they are the
ground truth when reconciling a payment by hand.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Identifier, String, Text

from payments.domain import payments


class MatchStrategy(Enum):
    PROVIDER_PAYMENT_ID = "provider_payment_id"
    PROVIDER_REFERENCE = "provider_reference"
    NONE = "none"


class FailureReason(Enum):
    MISSING_SIGNATURE = "MissingSignature"
    UNKNOWN_PROVIDER = "UnknownProvider"
    INVALID_SIGNATURE = "InvalidSignature"
    STALE_TIMESTAMP = "StaleTimestamp"
    FUTURE_TIMESTAMP = "FutureTimestamp"
    MALFORMED_PAYLOAD = "MalformedPayload"
    PAYMENT_NOT_FOUND = "PaymentNotFound"
    AMBIGUOUS_MATCH = "AmbiguousMatch"
    INTERNAL_ERROR = "InternalError"


@payments.aggregate
class WebhookEvent:
    raw_payload = Text()  # Body exactly as received, decoded as UTF-8 with replacement
    provider = String(max_length=50)
    payment_method = String(max_length=20)
    provider_payment_id = String(max_length=255)
    provider_reference = String(max_length=255)
    provider_status = String(max_length=100)
    mapped_status = String(max_length=20)
    payment_id = Identifier()
    match_strategy = String(choices=MatchStrategy, default=MatchStrategy.NONE.value)
    signature_valid = Boolean(default=False)
    status_changed = Boolean(default=False)
    success = Boolean(default=False)
    failure_reason = String(max_length=50)
    error = Text()
    processed_at = DateTime()


@payments.repository(part_of=WebhookEvent)
class WebhookEventRepository:
    """Append-only: ``record`` is the only write path."""

    def record(self, **fields) -> WebhookEvent:
        event = WebhookEvent(processed_at=datetime.now(UTC), **fields)
        self.add(event)
        return event

    def for_payment(self, payment_id: str) -> list[WebhookEvent]:
        return self._dao.query.filter(payment_id=str(payment_id)).all().items

    def unmatched(self) -> list[WebhookEvent]:
        return self._dao.query.filter(failure_reason=FailureReason.PAYMENT_NOT_FOUND.value).all().items
