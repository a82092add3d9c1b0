"""Live adapters for the instruction-based rails: BPAY, PayID and bank transfer.

All three talk to the same rail provider REST API and differ only in the
resource path, the reference prefix and the instructions shown to the payer.
"""

from abc import abstractmethod
from datetime import UTC, datetime, timedelta

import httpx

from payments.config import PaymentSettings
from payments.gateway.http_adapter import HttpGatewayMixin, generate_payment_reference
from payments.gateway.port import CancellationResult, CreationResult, PaymentGateway, StatusResult
from payments.payment.details import PaymentDetails, PaymentMethodType, summary

# Instruction-based payments that carry no expiry of their own lapse after this
DEFAULT_EXPIRY = timedelta(days=7)


def _parse_timestamp(value) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class RailGateway(HttpGatewayMixin, PaymentGateway):
    method: PaymentMethodType
    resource: str

    def __init__(self, settings: PaymentSettings, client: httpx.Client | None = None) -> None:
        super().__init__(
            settings,
            base_url=settings.provider_base_url,
            headers={"Authorization": f"Bearer {settings.provider_api_key}"},
            client=client,
        )

    @abstractmethod
    def reference_prefix(self) -> str:
        """Prefix for references generated on this rail."""

    @abstractmethod
    def instructions(self, reference: str, details: PaymentDetails, order) -> dict:
        """What the payer needs to complete the payment."""

    def default_expiry(self, details: PaymentDetails) -> datetime | None:
        return datetime.now(UTC) + DEFAULT_EXPIRY

    def create_payment(self, details: PaymentDetails, order) -> CreationResult:
        reference = generate_payment_reference(self.reference_prefix(), str(order.id))
        response = self._request(
            "POST",
            self.resource,
            json={
                "reference": reference,
                "amount": details.amount,
                "currency": self.settings.currency,
                "orderNumber": order.order_number,
                "description": summary(details),
                "details": details.to_wire(),
            },
        )
        if not response.ok:
            return CreationResult(success=False, failure_reason=response.failure_reason, retryable=response.retryable)

        provider_payment_id = response.data.get("id")
        if not provider_payment_id:
            return CreationResult(success=False, failure_reason="Provider response is missing a payment id")

        provider_reference = response.data.get("reference") or reference
        return CreationResult(
            success=True,
            provider_payment_id=str(provider_payment_id),
            provider_reference=provider_reference,
            provider_status=response.data.get("status", "pending"),
            instructions=self.instructions(provider_reference, details, order),
            redirect_url=response.data.get("redirectUrl"),
            expires_at=_parse_timestamp(response.data.get("expiresAt")) or self.default_expiry(details),
        )

    def fetch_status(self, payment) -> StatusResult:
        response = self._request("GET", f"{self.resource}/{payment.provider_payment_id}")
        if not response.ok:
            return StatusResult(success=False, failure_reason=response.failure_reason, retryable=response.retryable)
        return StatusResult(success=True, provider_status=response.data.get("status"))

    def cancel_payment(self, payment) -> CancellationResult:
        response = self._request("POST", f"{self.resource}/{payment.provider_payment_id}/cancel")
        if not response.ok:
            return CancellationResult(
                success=False,
                failure_reason=response.failure_reason,
                retryable=response.retryable,
            )
        return CancellationResult(success=True, provider_status=response.data.get("status", "cancelled"))


class BpayGateway(RailGateway):
    provider = "bpay"
    method = PaymentMethodType.BPAY
    resource = "/bpay/payments"

    def reference_prefix(self) -> str:
        return self.settings.accounts.bpay_reference_prefix

    def default_expiry(self, details) -> datetime | None:
        return details.expiry_date

    def instructions(self, reference, details, order) -> dict:
        return {
            "type": "bpay",
            "billerCode": self.settings.accounts.bpay_biller_code,
            "reference": reference,
            "amount": details.amount,
            "message": "Please complete your BPAY payment using the provided details.",
        }


class PayIdGateway(RailGateway):
    provider = "payid"
    method = PaymentMethodType.PAYID
    resource = "/payid/payments"

    def reference_prefix(self) -> str:
        return "PAYID-"

    def instructions(self, reference, details, order) -> dict:
        return {
            "type": "payid",
            "payId": self.settings.accounts.payid_identifier,
            "businessName": self.settings.accounts.payid_business_name,
            "reference": reference,
            "amount": details.amount,
            "description": details.description or f"Energi Hive payment for order {order.order_number}",
            "message": "Please complete your PayID payment using the provided details.",
        }


class BankTransferGateway(RailGateway):
    provider = "bank_transfer"
    method = PaymentMethodType.BANK_TRANSFER
    resource = "/bank-transfers"

    def reference_prefix(self) -> str:
        return self.settings.accounts.bank_reference_prefix

    def instructions(self, reference, details, order) -> dict:
        return {
            "type": "bank_transfer",
            "accountName": self.settings.accounts.bank_account_name,
            "bsb": self.settings.accounts.bank_bsb,
            "accountNumber": self.settings.accounts.bank_account_number,
            "reference": reference,
            "amount": details.amount,
            "message": "Please complete your bank transfer using the provided details.",
        }
