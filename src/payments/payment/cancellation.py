"""Cancel a payment that has not settled yet.

The provider is asked first. If it refuses or times out the stored payment
is left exactly as it was and the gateway error surfaces to the caller.
"""

from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from payments.errors import ConcurrentUpdateError, GatewayError, InvalidStateTransitionError
from payments.gateway import get_gateway
from payments.payment.lifecycle import MAX_CONFLICT_RETRIES, cascade_to_order
from payments.payment.payment import CANCELLABLE_STATUSES, Payment, PaymentStatus
from payments.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REASON = "User cancelled"


def _assert_cancellable(payment: Payment) -> None:
    current = PaymentStatus(payment.status)
    if current not in CANCELLABLE_STATUSES:
        raise InvalidStateTransitionError(
            f"Cannot cancel payment: payment status is {current.value}",
            current_status=current.value,
        )


def cancel_payment(payment: Payment, actor: str, reason: str | None = None) -> Payment:
    _assert_cancellable(payment)

    gateway = get_gateway(payment.payment_method)
    result = gateway.cancel_payment(payment)
    if not result.success:
        logger.warning(
            "gateway_failure",
            operation="cancel_payment",
            provider=gateway.provider,
            payment_id=str(payment.id),
            reason=result.failure_reason,
            retryable=result.retryable,
        )
        raise GatewayError(
            "Failed to cancel payment with provider",
            provider_error=result.failure_reason,
            retryable=result.retryable,
        )

    repo = current_domain.repository_for(Payment)
    for _ in range(MAX_CONFLICT_RETRIES):
        payment.cancel(reason or DEFAULT_REASON, actor)
        try:
            repo.add(payment)
        except ExpectedVersionError:
            # Re-check against whatever the concurrent writer left behind
            payment = repo.get(str(payment.id))
            _assert_cancellable(payment)
            continue

        logger.info("payment_cancelled", payment_id=str(payment.id), cancelled_by=actor)
        cascade_to_order(payment, PaymentStatus.CANCELLED)
        return payment

    raise ConcurrentUpdateError("Payment", str(payment.id))
