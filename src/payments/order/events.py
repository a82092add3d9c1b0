"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from payments.domain import payments


@payments.event(part_of="Order")
class OrderPlaced:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    total = Float(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@payments.event(part_of="Order")
class PaymentAttached:
    """A payment was created against the order; pricing is now frozen."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    attached_at = DateTime(required=True)


@payments.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    reason = String(max_length=255)
    changed_at = DateTime(required=True)
