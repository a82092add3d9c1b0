"""Refund a completed payment (admin only).

Direct debits are refunded through the provider; the push rails are
refunded by manual transfer, so only the record changes.
"""

from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from payments.errors import ConcurrentUpdateError, GatewayError
from payments.gateway import get_gateway
from payments.payment.lifecycle import cascade_to_order
from payments.payment.payment import Payment, PaymentStatus
from payments.utils.logging import get_logger

logger = get_logger(__name__)


def refund_payment(payment: Payment, actor: str, reason: str, amount: float | None = None) -> Payment:
    refund_amount = payment.check_refund(amount)

    gateway = get_gateway(payment.payment_method)
    result = gateway.refund_payment(payment, refund_amount, reason)
    if not result.success:
        logger.warning(
            "gateway_failure",
            operation="refund_payment",
            provider=gateway.provider,
            payment_id=str(payment.id),
            reason=result.failure_reason,
            retryable=result.retryable,
        )
        raise GatewayError(
            "Failed to refund payment with provider",
            provider_error=result.failure_reason,
            retryable=result.retryable,
        )

    payment.refund(refund_amount, reason, actor)
    if result.provider_refund_id:
        payment.merge_metadata({"providerRefundId": result.provider_refund_id})
    # Money has moved; a concurrent writer here is surfaced rather than retried
    try:
        current_domain.repository_for(Payment).add(payment)
    except ExpectedVersionError:
        logger.error("payment_refund_conflict", payment_id=str(payment.id), amount=refund_amount)
        raise ConcurrentUpdateError("Payment", str(payment.id)) from None

    logger.info("payment_refunded", payment_id=str(payment.id), amount=refund_amount, refunded_by=actor)
    cascade_to_order(payment, PaymentStatus.REFUNDED)
    return payment
