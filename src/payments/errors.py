"""Error taxonomy for the payments core.

Every client-facing failure is a ``PaymentError`` carrying the HTTP status it
maps to and a stable ``code``. ``ConfigurationError`` and ``VaultError`` are
deliberately outside that hierarchy: they signal faults that must reach the
outer boundary as a generic 500 (or stop the process at startup).
"""

from typing import Any


class PaymentError(Exception):
    """Base class for payment failures that map onto an HTTP response."""

    status_code = 400
    code = "payment_error"
    headers: dict[str, str] | None = None

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class PaymentValidationError(PaymentError):
    """Field-level validation failure of a request or payment detail payload."""

    code = "validation_error"

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        super().__init__(message, errors=errors or [])
        self.errors = errors or []


class TagMismatchError(PaymentValidationError):
    """The payment detail payload has the shape of a different payment method."""

    code = "payment_method_mismatch"


class AmountMismatchError(PaymentError):
    code = "amount_mismatch"

    def __init__(self, expected: float, received: float) -> None:
        super().__init__(
            "Payment amount does not match order total",
            expected=expected,
            received=received,
        )
        self.expected = expected
        self.received = received


class UnsupportedCurrencyError(PaymentError):
    code = "unsupported_currency"

    def __init__(self, currency: str, supported: str) -> None:
        super().__init__(f"Currency {currency!r} is not supported", supported=supported)


class NotAuthenticatedError(PaymentError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(PaymentError):
    status_code = 403
    code = "forbidden"


class NotFoundError(PaymentError):
    status_code = 404
    code = "not_found"


class InvalidStateTransitionError(PaymentError):
    code = "invalid_state_transition"

    def __init__(self, message: str, current_status: str) -> None:
        super().__init__(message, current_status=current_status)
        self.current_status = current_status


class DuplicatePaymentError(PaymentError):
    status_code = 409
    code = "duplicate_payment"

    def __init__(self, order_id: str, existing_payment_id: str, existing_status: str) -> None:
        super().__init__(
            "Order already has an active payment",
            order_id=order_id,
            payment_id=existing_payment_id,
            current_status=existing_status,
        )


class ConcurrentUpdateError(PaymentError):
    """Other writers kept winning the version check for this aggregate."""

    status_code = 409
    code = "concurrent_update"

    def __init__(self, aggregate: str, identifier: str) -> None:
        super().__init__(f"{aggregate} {identifier} was modified concurrently", aggregate=aggregate, id=identifier)


class RateLimitedError(PaymentError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, retry_after: int) -> None:
        super().__init__("Too many requests, please slow down.", retry_after=retry_after)
        self.headers = {"Retry-After": str(retry_after)}


class GatewayError(PaymentError):
    """The payment provider rejected the request, failed or timed out."""

    status_code = 500
    code = "gateway_error"

    def __init__(self, message: str, provider_error: str | None = None, retryable: bool = False) -> None:
        super().__init__(message, provider_error=provider_error, retryable=retryable)
        self.provider_error = provider_error
        self.retryable = retryable


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid. Fatal at startup."""


class VaultError(RuntimeError):
    """Encryption or decryption of a stored secret failed."""
