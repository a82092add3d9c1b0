"""Inbound provider callbacks: authenticate, match, apply, audit.

``WebhookReconciler.handle`` never raises. Every call ends in exactly one
``WebhookEvent`` audit record and a ``WebhookResult`` the route returns as
is. Rejections carry minimal detail in the response; the full reason lives
in the audit record.

Matching is two-step: the provider payment id first (scoped to the payment
method), then the provider reference. Several candidates at either step is
treated as ambiguous and nothing is applied.
"""

import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from datetime import datetime

from protean.utils.globals import current_domain

from payments.config import PaymentSettings, get_settings
from payments.payment.details import PaymentMethodType
from payments.payment.lifecycle import apply_status
from payments.payment.payment import Payment
from payments.payment.repository import find_by_provider_payment_id, find_by_reference
from payments.payment.status_map import map_provider_status
from payments.security.signatures import Freshness, check_timestamp, verify_signature
from payments.utils.logging import get_logger
from payments.webhook.event import FailureReason, MatchStrategy, WebhookEvent

logger = get_logger(__name__)

PROVIDER_HEADER = "x-webhook-provider"
TIMESTAMP_HEADER = "webhook-timestamp"

# Provider tag -> the header it signs with
SIGNATURE_HEADERS = {
    "bpay": "x-bpay-signature",
    "payid": "x-payid-signature",
    "gocardless": "webhook-signature",
    "bank_transfer": "x-bank-signature",
}

PROVIDER_METHODS = {
    "bpay": PaymentMethodType.BPAY,
    "payid": PaymentMethodType.PAYID,
    "gocardless": PaymentMethodType.DIRECT_DEBIT,
    "bank_transfer": PaymentMethodType.BANK_TRANSFER,
}

_STATUS_CODES = {
    FailureReason.MISSING_SIGNATURE: 401,
    FailureReason.UNKNOWN_PROVIDER: 401,
    FailureReason.INVALID_SIGNATURE: 401,
    FailureReason.STALE_TIMESTAMP: 401,
    FailureReason.FUTURE_TIMESTAMP: 401,
    FailureReason.MALFORMED_PAYLOAD: 400,
    FailureReason.PAYMENT_NOT_FOUND: 404,
    FailureReason.AMBIGUOUS_MATCH: 409,
    FailureReason.INTERNAL_ERROR: 500,
}

_RESPONSE_ERRORS = {
    401: "Unauthorized",
    400: "Malformed webhook payload",
    404: "Payment not found",
    409: "Ambiguous payment match",
    500: "Internal server error",
}


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: dict


class WebhookRejected(Exception):
    def __init__(self, reason: FailureReason, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


@dataclass
class AuditDraft:
    """Fields gathered while a callback is processed, written once at the end."""

    raw_payload: str
    provider: str | None = None
    payment_method: str | None = None
    provider_payment_id: str | None = None
    provider_reference: str | None = None
    provider_status: str | None = None
    mapped_status: str | None = None
    payment_id: str | None = None
    match_strategy: str = MatchStrategy.NONE.value
    signature_valid: bool = False
    status_changed: bool = False
    success: bool = False
    failure_reason: str | None = None
    error: str | None = None


def _first(payload: dict, *keys: str):
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_timestamp(value) -> float:
    if isinstance(value, bool):
        raise ValueError("timestamp must be a number or ISO-8601 string")
    if isinstance(value, int | float):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp()


class WebhookReconciler:
    def __init__(self, settings: PaymentSettings | None = None) -> None:
        self._settings = settings

    @property
    def settings(self) -> PaymentSettings:
        return self._settings or get_settings()

    def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        audit = AuditDraft(raw_payload=raw_body.decode("utf-8", errors="replace"))
        lowered = {key.lower(): value for key, value in headers.items()}

        try:
            result = self._process(raw_body, lowered, audit)
        except WebhookRejected as rejection:
            audit.failure_reason = rejection.reason.value
            audit.error = rejection.detail
            status_code = _STATUS_CODES[rejection.reason]
            logger.warning(
                "webhook_rejected",
                provider=audit.provider,
                reason=rejection.reason.value,
                detail=rejection.detail,
                provider_payment_id=audit.provider_payment_id,
                provider_reference=audit.provider_reference,
            )
            result = WebhookResult(status_code, {"error": _RESPONSE_ERRORS[status_code]})
        except Exception as exc:
            logger.exception("webhook_processing_failed", provider=audit.provider, payment_id=audit.payment_id)
            audit.failure_reason = FailureReason.INTERNAL_ERROR.value
            audit.error = str(exc) or type(exc).__name__
            result = WebhookResult(500, {"error": _RESPONSE_ERRORS[500]})

        self._write_audit(audit)
        return result

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    def _process(self, raw_body: bytes, headers: dict, audit: AuditDraft) -> WebhookResult:
        provider, signature = self._resolve_provider(headers)
        audit.provider = provider

        if not verify_signature(raw_body, signature, self.settings.webhook_secret(provider)):
            raise WebhookRejected(FailureReason.INVALID_SIGNATURE, "Signature does not match payload")
        audit.signature_valid = True

        payload = self._parse(raw_body)
        self._check_freshness(headers.get(TIMESTAMP_HEADER) or payload.get("timestamp"))

        method = self._payment_method(provider, payload)
        audit.payment_method = method.value
        audit.provider_payment_id = _first(payload, "paymentId", "payment_id", "id")
        audit.provider_reference = _first(payload, "reference", "providerReference", "provider_reference")
        audit.provider_status = _first(payload, "status")
        if not audit.provider_payment_id and not audit.provider_reference:
            raise WebhookRejected(FailureReason.MALFORMED_PAYLOAD, "Payload carries neither paymentId nor reference")

        payment = self._match(method, audit)
        audit.payment_id = str(payment.id)

        mapped = map_provider_status(audit.provider_status)
        audit.mapped_status = mapped.value

        outcome = apply_status(payment, mapped, source="webhook")
        audit.status_changed = outcome.changed
        audit.success = True

        logger.info(
            "webhook_processed",
            provider=provider,
            payment_id=audit.payment_id,
            match_strategy=audit.match_strategy,
            provider_status=audit.provider_status,
            status=outcome.payment.status,
            status_changed=outcome.changed,
        )
        return WebhookResult(
            200,
            {
                "received": True,
                "paymentId": audit.payment_id,
                "status": outcome.payment.status,
                "statusChanged": outcome.changed,
            },
        )

    def _resolve_provider(self, headers: dict) -> tuple[str, str]:
        declared = (headers.get(PROVIDER_HEADER) or "").strip().lower()
        if declared:
            if declared not in SIGNATURE_HEADERS:
                raise WebhookRejected(FailureReason.UNKNOWN_PROVIDER, f"Unknown provider {declared!r}")
            signature = headers.get(SIGNATURE_HEADERS[declared])
            if not signature:
                raise WebhookRejected(FailureReason.MISSING_SIGNATURE, f"Missing {SIGNATURE_HEADERS[declared]} header")
            return declared, signature

        for provider, header in SIGNATURE_HEADERS.items():
            if headers.get(header):
                return provider, headers[header]
        raise WebhookRejected(FailureReason.MISSING_SIGNATURE, "No provider signature header present")

    @staticmethod
    def _parse(raw_body: bytes) -> dict:
        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError) as exc:
            raise WebhookRejected(FailureReason.MALFORMED_PAYLOAD, f"Body is not valid JSON: {exc}") from None
        if not isinstance(payload, dict):
            raise WebhookRejected(FailureReason.MALFORMED_PAYLOAD, "Body must be a JSON object")
        return payload

    def _check_freshness(self, timestamp) -> None:
        if timestamp in (None, ""):
            return
        try:
            seconds = _parse_timestamp(timestamp)
        except (TypeError, ValueError):
            raise WebhookRejected(FailureReason.MALFORMED_PAYLOAD, f"Unreadable timestamp {timestamp!r}") from None

        freshness = check_timestamp(seconds, self.settings.webhook_max_age_seconds)
        if freshness is Freshness.STALE:
            raise WebhookRejected(FailureReason.STALE_TIMESTAMP, "Webhook timestamp is outside the replay window")
        if freshness is Freshness.FUTURE:
            raise WebhookRejected(FailureReason.FUTURE_TIMESTAMP, "Webhook timestamp is in the future")

    @staticmethod
    def _payment_method(provider: str, payload: dict) -> PaymentMethodType:
        expected = PROVIDER_METHODS[provider]
        declared = _first(payload, "paymentMethod", "payment_method")
        if declared is None:
            return expected
        try:
            method = PaymentMethodType(declared)
        except ValueError:
            raise WebhookRejected(FailureReason.MALFORMED_PAYLOAD, f"Unknown paymentMethod {declared!r}") from None
        if method != expected:
            raise WebhookRejected(
                FailureReason.MALFORMED_PAYLOAD,
                f"paymentMethod {method.value!r} cannot be signed by provider {provider!r}",
            )
        return method

    @staticmethod
    def _match(method: PaymentMethodType, audit: AuditDraft) -> Payment:
        if audit.provider_payment_id:
            candidates = find_by_provider_payment_id(str(audit.provider_payment_id), method.value)
            if len(candidates) == 1:
                audit.match_strategy = MatchStrategy.PROVIDER_PAYMENT_ID.value
                return candidates[0]
            if len(candidates) > 1:
                raise WebhookRejected(
                    FailureReason.AMBIGUOUS_MATCH,
                    f"{len(candidates)} payments share provider payment id {audit.provider_payment_id!r}",
                )

        if audit.provider_reference:
            candidates = [
                payment
                for payment in find_by_reference(str(audit.provider_reference))
                if payment.payment_method == method.value
            ]
            if len(candidates) == 1:
                audit.match_strategy = MatchStrategy.PROVIDER_REFERENCE.value
                return candidates[0]
            if len(candidates) > 1:
                raise WebhookRejected(
                    FailureReason.AMBIGUOUS_MATCH,
                    f"{len(candidates)} payments share reference {audit.provider_reference!r}",
                )

        raise WebhookRejected(FailureReason.PAYMENT_NOT_FOUND, "No payment matches paymentId or reference")

    @staticmethod
    def _write_audit(audit: AuditDraft) -> None:
        """Best effort: an audit failure is logged and must not replace the original outcome."""
        fields = {key: value for key, value in asdict(audit).items() if value is not None}
        for key in ("provider_payment_id", "provider_reference", "provider_status"):
            if key in fields:
                fields[key] = str(fields[key])
        try:
            current_domain.repository_for(WebhookEvent).record(**fields)
        except Exception:
            logger.exception(
                "webhook_audit_write_failed",
                provider=audit.provider,
                payment_id=audit.payment_id,
                failure_reason=audit.failure_reason,
            )
