"""CreatePayment: validate, create with the provider, persist and link to the order.

The checks run in a fixed order: currency, order existence, ownership,
payment details, amount, then the one-open-payment-per-order rule. Only
then is the provider called. If the provider call fails nothing is
persisted. If persisting fails after the provider accepted the payment, the
provider payment is cancelled best-effort before the error propagates.

Two creates racing for the same order both reach the provider; the order's
version check lets only one commit. ``submit_payment`` cancels the loser's
provider payment and reports it as a duplicate.
"""

import json
import math
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime

from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from payments.config import get_settings
from payments.domain import payments
from payments.errors import (
    AmountMismatchError,
    ConcurrentUpdateError,
    DuplicatePaymentError,
    ForbiddenError,
    GatewayError,
    NotFoundError,
    PaymentValidationError,
    TagMismatchError,
    UnsupportedCurrencyError,
)
from payments.gateway import get_gateway
from payments.order.order import Order
from payments.payment.payment import Payment
from payments.payment.repository import find_open_for_order
from payments.payment.validation import validate_details
from payments.security.vault import get_vault
from payments.utils.logging import get_logger

logger = get_logger(__name__)

# Provider payments created during the current submit whose records are not committed yet
_uncommitted: ContextVar[list | None] = ContextVar("uncommitted_provider_payments", default=None)


def same_amount(first: float, second: float) -> bool:
    """Equal to the cent."""
    return round(first * 100) == round(second * 100)


@dataclass(frozen=True)
class CreatedPayment:
    payment_id: str
    instructions: dict = field(default_factory=dict)
    redirect_url: str | None = None
    expires_at: datetime | None = None


@payments.command(part_of="Payment")
class CreatePayment:
    user_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(max_length=50, required=True)
    payment_method = String(max_length=50, required=True)
    payment_details = Text(required=True)  # JSON object, camelCase keys
    client_metadata = Text()  # JSON object
    receipt_email = String(max_length=254)


@payments.command_handler(part_of=Payment)
class CreatePaymentHandler:
    @handle(CreatePayment)
    def create_payment(self, command) -> CreatedPayment:
        settings = get_settings()
        if command.currency != settings.currency:
            raise UnsupportedCurrencyError(command.currency, settings.currency)

        try:
            order = current_domain.repository_for(Order).get(str(command.order_id))
        except ObjectNotFoundError:
            raise NotFoundError("Order not found") from None

        if str(order.user_id) != str(command.user_id):
            raise ForbiddenError("Forbidden")

        result = validate_details(command.payment_method, json.loads(command.payment_details))
        if result.tag_mismatch:
            raise TagMismatchError(
                f"Payment details do not match payment method {command.payment_method!r}",
                errors=[error.to_dict() for error in result.errors],
            )
        if result.errors:
            raise PaymentValidationError(
                "Invalid payment details",
                errors=[error.to_dict() for error in result.errors],
            )
        details = result.value

        if not math.isfinite(command.amount):
            raise PaymentValidationError(
                "Invalid payment amount",
                errors=[{"field": "amount", "message": "Must be a finite number"}],
            )
        if not same_amount(command.amount, order.total):
            raise AmountMismatchError(expected=order.total, received=command.amount)
        if not same_amount(details.amount, order.total):
            raise AmountMismatchError(expected=order.total, received=details.amount)

        existing = find_open_for_order(str(order.id))
        if existing is not None:
            raise DuplicatePaymentError(str(order.id), str(existing.id), existing.status)

        gateway = get_gateway(details.method)
        outcome = gateway.create_payment(details, order)
        if not outcome.success:
            logger.warning(
                "gateway_failure",
                operation="create_payment",
                provider=gateway.provider,
                order_id=str(order.id),
                reason=outcome.failure_reason,
                retryable=outcome.retryable,
            )
            raise GatewayError(
                "Failed to create payment with provider",
                provider_error=outcome.failure_reason,
                retryable=outcome.retryable,
            )

        pending = _uncommitted.get()
        if pending is not None:
            pending.append((gateway, outcome.provider_payment_id))

        metadata = json.loads(command.client_metadata) if command.client_metadata else {}
        try:
            payment = Payment.create(
                user_id=str(command.user_id),
                order_id=str(order.id),
                details=details,
                amount=command.amount,
                currency=command.currency,
                vault=get_vault(),
                provider=gateway.provider,
                provider_payment_id=outcome.provider_payment_id,
                provider_reference=outcome.provider_reference,
                metadata=metadata,
                receipt_email=command.receipt_email,
                receipt_url=outcome.redirect_url,
            )
            current_domain.repository_for(Payment).add(payment)

            order.attach_payment(str(payment.id))
            current_domain.repository_for(Order).add(order)
        except Exception:
            logger.exception(
                "payment_persist_failed",
                order_id=str(order.id),
                provider=gateway.provider,
                provider_payment_id=outcome.provider_payment_id,
            )
            _compensate(gateway, outcome.provider_payment_id)
            if pending is not None:
                pending.remove((gateway, outcome.provider_payment_id))
            raise

        logger.info(
            "payment_created",
            payment_id=str(payment.id),
            order_id=str(order.id),
            payment_method=details.method.value,
            amount=command.amount,
        )
        return CreatedPayment(
            payment_id=str(payment.id),
            instructions=outcome.instructions,
            redirect_url=outcome.redirect_url,
            expires_at=outcome.expires_at,
        )


class _ProviderHandle:
    def __init__(self, provider_payment_id: str | None) -> None:
        self.provider_payment_id = provider_payment_id


def _compensate(gateway, provider_payment_id: str | None) -> None:
    """Cancel a provider payment that has no local record. Failures are logged, not raised."""
    if not provider_payment_id:
        return
    try:
        cancelled = gateway.cancel_payment(_ProviderHandle(provider_payment_id))
    except Exception:
        logger.exception("payment_compensation_failed", provider_payment_id=provider_payment_id)
        return
    if not cancelled.success:
        logger.error(
            "payment_compensation_failed",
            provider_payment_id=provider_payment_id,
            reason=cancelled.failure_reason,
        )


def submit_payment(command: CreatePayment) -> CreatedPayment:
    """Process ``command``, undoing the provider payment if the order commit loses a race."""
    pending: list = []
    token = _uncommitted.set(pending)
    try:
        return current_domain.process(command, asynchronous=False)
    except ExpectedVersionError:
        logger.warning("payment_create_conflict", order_id=str(command.order_id), provider_payments=len(pending))
        for gateway, provider_payment_id in pending:
            _compensate(gateway, provider_payment_id)

        existing = find_open_for_order(str(command.order_id))
        if existing is not None:
            raise DuplicatePaymentError(str(command.order_id), str(existing.id), existing.status) from None
        raise ConcurrentUpdateError("Order", str(command.order_id)) from None
    finally:
        _uncommitted.reset(token)
