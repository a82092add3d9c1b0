"""Order aggregate (CQRS): the cart a payment settles.

Orders are modelled only as far as payments need them: line items, pricing,
lifecycle and the link to the active payment.

State Machine:
    DRAFT → PENDING (payment attached) → PAID → PROCESSING → SHIPPED → DELIVERED
    DRAFT, PENDING, PAID, PROCESSING → CANCELLED
    PAID, PROCESSING, SHIPPED, DELIVERED → REFUNDED
    CANCELLED, REFUNDED are terminal

Pricing: subtotal is the sum of line totals, GST is 10% of the discounted
subtotal and ``total == subtotal + tax - discount``. Once a payment has been
attached the pricing is frozen.
"""

import random
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from payments.domain import payments
from payments.errors import InvalidStateTransitionError
from payments.order.events import OrderPlaced, OrderStatusChanged, PaymentAttached

GST_RATE = 0.10
PRICE_TOLERANCE = 0.005


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class ProductType(Enum):
    BATTERY = "battery"
    SOLAR = "solar"
    SERVICE = "service"
    ACCESSORY = "accessory"


class AustralianState(Enum):
    NSW = "NSW"
    VIC = "VIC"
    QLD = "QLD"
    SA = "SA"
    WA = "WA"
    TAS = "TAS"
    NT = "NT"
    ACT = "ACT"


_VALID_TRANSITIONS = {
    OrderStatus.DRAFT: {OrderStatus.PENDING, OrderStatus.CANCELLED},
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}


def calculate_gst(taxable_amount: float) -> float:
    """Australian GST (10%), rounded to cents."""
    return round(taxable_amount * GST_RATE, 2)


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"EH{now:%y%m%d}{random.randint(0, 9999):04d}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@payments.value_object(part_of="Order")
class Address:
    """An Australian delivery or billing address, captured on the order."""

    name = String(required=True, min_length=2, max_length=255)
    line1 = String(required=True, min_length=3, max_length=255)
    line2 = String(max_length=255)
    city = String(required=True, min_length=2, max_length=100)
    state = String(required=True, choices=AustralianState)
    postal_code = String(required=True, max_length=4)
    country = String(default="Australia", max_length=100)

    @invariant.post
    def postal_code_must_be_four_digits(self):
        code = self.postal_code
        if code is not None and not (len(code) == 4 and code.isascii() and code.isdigit()):
            raise ValidationError({"postal_code": ["Australian postcodes must be 4 digits"]})

    @invariant.post
    def country_must_be_australia(self):
        if self.country is not None and self.country != "Australia":
            raise ValidationError({"country": ["Only Australian addresses are supported"]})


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@payments.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    product_type = String(choices=ProductType, required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    total_price = Float(required=True, min_value=0.0)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@payments.aggregate
class Order:
    user_id = Identifier(required=True)
    order_number = String(max_length=20, required=True)
    items = HasMany(OrderItem)
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    discount = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="AUD")
    status = String(choices=OrderStatus, default=OrderStatus.DRAFT.value)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    payment_id = Identifier()
    notes = Text()
    created_at = DateTime()
    updated_at = DateTime()
    paid_at = DateTime()
    cancelled_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def total_must_match_pricing(self):
        expected = (self.subtotal or 0.0) + (self.tax or 0.0) - (self.discount or 0.0)
        if abs((self.total or 0.0) - expected) > PRICE_TOLERANCE:
            raise ValidationError({"total": ["Total must equal subtotal + tax - discount"]})

    @invariant.post
    def discount_cannot_exceed_subtotal(self):
        if (self.discount or 0.0) < 0 or (self.discount or 0.0) > (self.subtotal or 0.0):
            raise ValidationError({"discount": ["Discount must be between 0 and the subtotal"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @staticmethod
    def _price(items_data: list[dict], discount: float) -> tuple[list[dict], float, float, float]:
        priced = [
            {**item, "total_price": round(item["unit_price"] * item["quantity"], 2)}
            for item in items_data
        ]
        subtotal = round(sum(item["total_price"] for item in priced), 2)
        tax = calculate_gst(max(subtotal - discount, 0.0))
        total = round(subtotal + tax - discount, 2)
        return priced, subtotal, tax, total

    @classmethod
    def create(
        cls,
        user_id: str,
        items_data: list[dict],
        shipping_address: dict | None = None,
        billing_address: dict | None = None,
        discount: float = 0.0,
        notes: str | None = None,
    ) -> "Order":
        """Price and create a draft order.

        Args:
            user_id: The owner of the order.
            items_data: List of dicts with product_id, product_type, quantity, unit_price.
            shipping_address: Dict with name, line1, line2, city, state, postal_code.
            billing_address: Same shape; defaults to the shipping address.
            discount: Amount taken off the subtotal before GST.
        """
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        priced, subtotal, tax, total = cls._price(items_data, discount)
        now = datetime.now(UTC)
        billing_address = billing_address or shipping_address

        order = cls(
            user_id=user_id,
            order_number=generate_order_number(now),
            items=[OrderItem(**item) for item in priced],
            subtotal=subtotal,
            tax=tax,
            discount=discount,
            total=total,
            shipping_address=Address(**shipping_address) if shipping_address else None,
            billing_address=Address(**billing_address) if billing_address else None,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                user_id=str(user_id),
                total=total,
                currency=order.currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    @property
    def pricing_frozen(self) -> bool:
        return self.payment_id is not None or OrderStatus(self.status) != OrderStatus.DRAFT

    def revise_items(self, items_data: list[dict], discount: float | None = None) -> None:
        """Replace the line items and re-price. Only drafts without a payment can change."""
        if self.pricing_frozen:
            raise ValidationError({"items": ["Order pricing is locked once a payment has been created"]})
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        discount = self.discount if discount is None else discount
        priced, subtotal, tax, total = self._price(items_data, discount)

        with atomic_change(self):
            for item in list(self.items):
                self.remove_items(item)
            for item in priced:
                self.add_items(OrderItem(**item))
            self.subtotal = subtotal
            self.tax = tax
            self.discount = discount
            self.total = total
            self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def can_transition(self, target_status: OrderStatus) -> bool:
        return target_status in _VALID_TRANSITIONS.get(OrderStatus(self.status), set())

    def transition_to(self, target_status: OrderStatus, reason: str | None = None) -> None:
        current = OrderStatus(self.status)
        if not self.can_transition(target_status):
            raise InvalidStateTransitionError(
                f"Cannot transition order from {current.value} to {target_status.value}",
                current_status=current.value,
            )

        now = datetime.now(UTC)
        self.status = target_status.value
        self.updated_at = now
        if target_status == OrderStatus.PAID:
            self.paid_at = now
        elif target_status == OrderStatus.CANCELLED:
            self.cancelled_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=current.value,
                new_status=target_status.value,
                reason=reason,
                changed_at=now,
            )
        )

    def attach_payment(self, payment_id: str) -> None:
        """Link a freshly created payment and move the order to awaiting settlement."""
        current = OrderStatus(self.status)
        if current not in (OrderStatus.DRAFT, OrderStatus.PENDING):
            raise InvalidStateTransitionError(
                f"Cannot attach a payment to an order that is {current.value}",
                current_status=current.value,
            )

        now = datetime.now(UTC)
        self.payment_id = payment_id
        if current == OrderStatus.DRAFT:
            self.transition_to(OrderStatus.PENDING, reason="payment_created")
        else:
            self.updated_at = now

        self.raise_(PaymentAttached(order_id=str(self.id), payment_id=str(payment_id), attached_at=now))
