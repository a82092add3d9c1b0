"""Provider status vocabulary -> canonical payment status.

Shared by the webhook reconciler and the gateway strategies. Unknown terms
are not an error: they map to ``pending`` so a new provider word never
crashes the callback path.
"""

from payments.payment.payment import PaymentStatus

_PROVIDER_STATUS = {
    "succeeded": PaymentStatus.COMPLETED,
    "paid": PaymentStatus.COMPLETED,
    "confirmed": PaymentStatus.COMPLETED,
    "paid_out": PaymentStatus.COMPLETED,
    "completed": PaymentStatus.COMPLETED,
    "failed": PaymentStatus.FAILED,
    "declined": PaymentStatus.FAILED,
    "customer_approval_denied": PaymentStatus.FAILED,
    "charged_back": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.CANCELLED,
    "canceled": PaymentStatus.CANCELLED,
    "refunded": PaymentStatus.REFUNDED,
    "processing": PaymentStatus.PROCESSING,
    "submitted": PaymentStatus.PROCESSING,
    "pending_submission": PaymentStatus.PROCESSING,
}


def map_provider_status(provider_status: str | None) -> PaymentStatus:
    if not provider_status:
        return PaymentStatus.PENDING
    return _PROVIDER_STATUS.get(str(provider_status).strip().lower(), PaymentStatus.PENDING)
