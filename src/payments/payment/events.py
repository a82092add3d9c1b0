"""Domain events for the Payment aggregate.

Events are versioned, immutable facts about payment state changes. They are
raised by the aggregate and dispatched when the aggregate is persisted.
"""

from protean.fields import DateTime, Float, Identifier, String

from payments.domain import payments


@payments.event(part_of="Payment")
class PaymentCreated:
    """A payment was accepted by the provider and recorded as pending."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    payment_method = String(required=True)
    provider_payment_id = String()
    provider_reference = String()
    created_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentStatusChanged:
    """The payment moved to a new lifecycle status."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    source = String(required=True)  # webhook, refresh, admin, cancel, refund
    changed_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentCancelled:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_by = String(required=True)
    cancelled_at = DateTime(required=True)


@payments.event(part_of="Payment")
class PaymentRefunded:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(max_length=500, required=True)
    refunded_by = String(required=True)
    refunded_at = DateTime(required=True)
