"""Admin override of a payment's status and metadata."""

from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from payments.errors import ConcurrentUpdateError
from payments.payment.lifecycle import MAX_CONFLICT_RETRIES, TransitionOutcome, apply_status
from payments.payment.payment import Payment, PaymentStatus


def override_payment(
    payment: Payment,
    actor: str,
    status: PaymentStatus | None = None,
    metadata: dict | None = None,
) -> TransitionOutcome:
    """Merge ``metadata`` and drive ``status`` through the normal transition rules.

    Unreachable statuses are ignored the same way a late provider callback is;
    ``changed`` on the outcome tells the caller whether the status moved.
    """
    if metadata:
        repo = current_domain.repository_for(Payment)
        for _ in range(MAX_CONFLICT_RETRIES):
            payment.merge_metadata({**metadata, "lastOverrideBy": actor})
            try:
                repo.add(payment)
                break
            except ExpectedVersionError:
                payment = repo.get(str(payment.id))
        else:
            raise ConcurrentUpdateError("Payment", str(payment.id))

    if status is None:
        return TransitionOutcome(payment=payment, changed=False, previous_status=payment.status)
    return apply_status(payment, status, source="admin")
