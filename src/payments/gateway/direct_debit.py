"""Direct-debit adapter over a GoCardless-style mandate + payment API.

Creating a payment sets up a mandate against the payer's bank account and
then schedules a payment on it. Amounts are sent in cents. The provider's
payment id is what webhooks and status queries refer to.
"""

import httpx

from payments.config import PaymentSettings
from payments.gateway.http_adapter import HttpGatewayMixin, generate_payment_reference
from payments.gateway.port import CancellationResult, CreationResult, PaymentGateway, RefundResult, StatusResult
from payments.payment.details import DirectDebitDetails

API_VERSION = "2015-07-06"


class DirectDebitGateway(HttpGatewayMixin, PaymentGateway):
    provider = "gocardless"

    def __init__(self, settings: PaymentSettings, client: httpx.Client | None = None) -> None:
        super().__init__(
            settings,
            base_url=settings.gocardless_base_url,
            headers={
                "Authorization": f"Bearer {settings.gocardless_access_token}",
                "GoCardless-Version": API_VERSION,
            },
            client=client,
        )

    def create_payment(self, details: DirectDebitDetails, order) -> CreationResult:
        reference = generate_payment_reference("GC-", str(order.id))

        mandate_body = {
            "account_holder_name": details.account_name,
            "branch_code": details.bsb.replace("-", ""),
            "account_number": details.account_number,
            "country_code": "AU",
            "scheme": "becs",
            "reference": reference,
        }
        if details.frequency is not None:
            mandate_body["metadata"] = {"frequency": details.frequency.value}

        mandate = self._request("POST", "/mandates", json={"mandates": mandate_body})
        if not mandate.ok:
            return CreationResult(success=False, failure_reason=mandate.failure_reason, retryable=mandate.retryable)
        mandate_id = mandate.data.get("mandates", {}).get("id")
        if not mandate_id:
            return CreationResult(success=False, failure_reason="Provider response is missing a mandate id")

        payment_body = {
            "amount": int(round(details.amount * 100)),
            "currency": self.settings.currency,
            "reference": reference,
            "description": f"Energi Hive order {order.order_number}",
            "links": {"mandate": mandate_id},
        }
        if details.start_date is not None:
            payment_body["charge_date"] = details.start_date.date().isoformat()

        payment = self._request("POST", "/payments", json={"payments": payment_body})
        if not payment.ok:
            return CreationResult(success=False, failure_reason=payment.failure_reason, retryable=payment.retryable)

        created = payment.data.get("payments", {})
        if not created.get("id"):
            return CreationResult(success=False, failure_reason="Provider response is missing a payment id")

        return CreationResult(
            success=True,
            provider_payment_id=created["id"],
            provider_reference=created.get("reference") or reference,
            provider_status=created.get("status", "pending_submission"),
            instructions={
                "type": "direct_debit",
                "mandateId": mandate_id,
                "chargeDate": created.get("charge_date"),
                "reference": created.get("reference") or reference,
                "amount": details.amount,
                "message": "Your Direct Debit has been set up. The payment will be collected automatically.",
            },
            redirect_url=mandate.data.get("mandates", {}).get("authorisation_url"),
        )

    def fetch_status(self, payment) -> StatusResult:
        response = self._request("GET", f"/payments/{payment.provider_payment_id}")
        if not response.ok:
            return StatusResult(success=False, failure_reason=response.failure_reason, retryable=response.retryable)
        return StatusResult(success=True, provider_status=response.data.get("payments", {}).get("status"))

    def cancel_payment(self, payment) -> CancellationResult:
        response = self._request("POST", f"/payments/{payment.provider_payment_id}/actions/cancel")
        if not response.ok:
            return CancellationResult(
                success=False,
                failure_reason=response.failure_reason,
                retryable=response.retryable,
            )
        return CancellationResult(
            success=True,
            provider_status=response.data.get("payments", {}).get("status", "cancelled"),
        )

    def refund_payment(self, payment, amount: float, reason: str) -> RefundResult:
        response = self._request(
            "POST",
            "/refunds",
            json={
                "refunds": {
                    "amount": int(round(amount * 100)),
                    "total_amount_confirmation": int(round(payment.amount * 100)),
                    "reference": reason[:18],
                    "links": {"payment": payment.provider_payment_id},
                }
            },
        )
        if not response.ok:
            return RefundResult(success=False, failure_reason=response.failure_reason, retryable=response.retryable)
        return RefundResult(success=True, provider_refund_id=response.data.get("refunds", {}).get("id"))
