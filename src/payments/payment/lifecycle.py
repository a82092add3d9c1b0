"""Central payment status transition, shared by refresh, webhook and admin paths.

``apply_status`` never raises for an unreachable or repeated transition: a
provider that redelivers or reorders callbacks must not cause errors. Saves
are version-checked by Protean; when another writer got there first the save
raises ``ExpectedVersionError`` and the payment is reloaded and the
transition re-evaluated against the fresh state. The Order
cascade runs only for the writer that actually changed the status.
"""

from dataclasses import dataclass

from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from payments.errors import ConcurrentUpdateError
from payments.order.order import Order, OrderStatus
from payments.payment.payment import Payment, PaymentStatus
from payments.utils.logging import get_logger

logger = get_logger(__name__)

MAX_CONFLICT_RETRIES = 3

_ORDER_CASCADE = {
    PaymentStatus.COMPLETED: OrderStatus.PAID,
    PaymentStatus.FAILED: OrderStatus.PENDING,
    PaymentStatus.CANCELLED: OrderStatus.CANCELLED,
    PaymentStatus.REFUNDED: OrderStatus.REFUNDED,
}


@dataclass(frozen=True)
class TransitionOutcome:
    payment: Payment
    changed: bool
    previous_status: str


def apply_status(payment: Payment, new_status: PaymentStatus, source: str) -> TransitionOutcome:
    """Move ``payment`` to ``new_status`` if the state machine allows it, and cascade to its order."""
    repo = current_domain.repository_for(Payment)
    previous = payment.status

    for _ in range(MAX_CONFLICT_RETRIES):
        current = PaymentStatus(payment.status)
        if current == new_status:
            logger.debug("payment_status_unchanged", payment_id=str(payment.id), status=current.value, source=source)
            return TransitionOutcome(payment=payment, changed=False, previous_status=previous)

        if not payment.can_transition(new_status):
            logger.info(
                "payment_transition_ignored",
                payment_id=str(payment.id),
                current_status=current.value,
                requested_status=new_status.value,
                source=source,
            )
            return TransitionOutcome(payment=payment, changed=False, previous_status=previous)

        previous = current.value
        payment.transition_to(new_status, source=source)
        try:
            repo.add(payment)
        except ExpectedVersionError:
            logger.info("payment_version_conflict", payment_id=str(payment.id), source=source)
            payment = repo.get(str(payment.id))
            previous = payment.status
            continue

        logger.info(
            "payment_status_changed",
            payment_id=str(payment.id),
            previous_status=previous,
            new_status=new_status.value,
            source=source,
        )
        cascade_to_order(payment, new_status)
        return TransitionOutcome(payment=payment, changed=True, previous_status=previous)

    raise ConcurrentUpdateError("Payment", str(payment.id))


def cascade_to_order(payment: Payment, payment_status: PaymentStatus) -> None:
    target = _ORDER_CASCADE.get(payment_status)
    if target is None:
        return

    repo = current_domain.repository_for(Order)
    for _ in range(MAX_CONFLICT_RETRIES):
        try:
            order = repo.get(str(payment.order_id))
        except ObjectNotFoundError:
            logger.warning("order_cascade_skipped", payment_id=str(payment.id), reason="order_not_found")
            return

        if str(order.payment_id) != str(payment.id):
            logger.info(
                "order_cascade_skipped",
                order_id=str(order.id),
                payment_id=str(payment.id),
                reason="payment_not_linked",
            )
            return

        if OrderStatus(order.status) == target:
            return

        if not order.can_transition(target):
            logger.info(
                "order_cascade_ignored",
                order_id=str(order.id),
                current_status=order.status,
                requested_status=target.value,
            )
            return

        order.transition_to(target, reason=f"payment_{payment_status.value}")
        try:
            repo.add(order)
        except ExpectedVersionError:
            logger.info("order_version_conflict", order_id=str(order.id))
            continue

        logger.info("order_status_cascaded", order_id=str(order.id), new_status=target.value)
        return

    logger.error("order_cascade_failed", order_id=str(payment.order_id), payment_id=str(payment.id))
