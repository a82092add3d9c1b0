"""Poll the provider for a payment's authoritative status.

The fallback for when a webhook has not arrived. Idempotent: a second
refresh with no provider-side change writes nothing and cascades nothing.
"""

from payments.errors import GatewayError
from payments.gateway import get_gateway
from payments.payment.lifecycle import apply_status
from payments.payment.payment import Payment
from payments.utils.logging import get_logger

logger = get_logger(__name__)


def refresh_status(payment: Payment) -> Payment:
    if not payment.provider_payment_id or payment.is_terminal:
        return payment

    gateway = get_gateway(payment.payment_method)
    result = gateway.fetch_status(payment)
    if not result.success:
        logger.warning(
            "gateway_failure",
            operation="fetch_status",
            provider=gateway.provider,
            payment_id=str(payment.id),
            reason=result.failure_reason,
            retryable=result.retryable,
        )
        raise GatewayError(
            "Failed to fetch payment status from provider",
            provider_error=result.failure_reason,
            retryable=result.retryable,
        )

    return apply_status(payment, result.status, source="refresh").payment
