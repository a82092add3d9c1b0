"""Payments load test scenarios.

Stateful SequentialTaskSet journeys: place an order, pay for it on one of
the push rails, then settle, duplicate-deliver or cancel through the
signed webhook and cancel routes.
"""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    order_data,
    payment_data,
    signed_webhook,
    user_headers,
    webhook_data,
)
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import PaymentState

# paymentMethod -> provider tag that signs its webhooks
_PROVIDERS = {"bpay": "bpay", "payid": "payid", "bank_transfer": "bank_transfer"}


class _OrderAndPayment(SequentialTaskSet):
    """Shared first two steps: place an order, create a payment for its total."""

    def on_start(self):
        self.state = PaymentState(headers=user_headers())

    def place_order(self):
        with self.client.post(
            "/orders",
            json=order_data(),
            headers=self.state.headers,
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code == 201:
                body = resp.json()
                self.state.order_id = body["id"]
                self.state.total = body["total"]
            else:
                resp.failure(f"Place order failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    def create_payment(self):
        payload = payment_data(self.state.order_id, self.state.total)
        with self.client.post(
            "/payments",
            json=payload,
            headers=self.state.headers,
            catch_response=True,
            name="POST /payments",
        ) as resp:
            if resp.status_code == 201:
                self.state.payment = resp.json()["payment"]
                self.state.payment_id = self.state.payment["id"]
                self.state.provider = _PROVIDERS[payload["paymentMethod"]]
            else:
                resp.failure(f"Create payment failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    def deliver_webhook(self, status: str, name: str):
        body, headers = signed_webhook(self.state.provider, webhook_data(self.state.payment, status))
        with self.client.post(
            "/payments/webhook",
            data=body,
            headers=headers,
            catch_response=True,
            name=name,
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = resp.json()["status"]
            else:
                resp.failure(f"Webhook failed: {resp.status_code}: {extract_error_detail(resp)}")


class PaymentSettledJourney(_OrderAndPayment):
    """Order -> Payment -> Webhook paid -> Duplicate webhook -> Read back.

    The happy path, including the redelivery every provider eventually does.
    """

    @task
    def order(self):
        self.place_order()

    @task
    def payment(self):
        self.create_payment()

    @task
    def webhook_paid(self):
        self.deliver_webhook("paid", "POST /payments/webhook (paid)")

    @task
    def webhook_duplicate(self):
        self.deliver_webhook("paid", "POST /payments/webhook (duplicate)")

    @task
    def read_back(self):
        with self.client.get(
            f"/payments/{self.state.payment_id}",
            headers=self.state.headers,
            catch_response=True,
            name="GET /payments/{id}",
        ) as resp:
            if resp.status_code != 200 or resp.json()["status"] != "completed":
                resp.failure(f"Unexpected payment state: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class PaymentCancelledJourney(_OrderAndPayment):
    """Order -> Payment -> Cancel -> Late webhook (ignored)."""

    @task
    def order(self):
        self.place_order()

    @task
    def payment(self):
        self.create_payment()

    @task
    def cancel(self):
        with self.client.delete(
            f"/payments/{self.state.payment_id}",
            params={"reason": "Changed my mind"},
            headers=self.state.headers,
            catch_response=True,
            name="DELETE /payments/{id}",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = "cancelled"
            else:
                resp.failure(f"Cancel failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def late_webhook(self):
        self.deliver_webhook("paid", "POST /payments/webhook (after cancel)")

    @task
    def done(self):
        self.interrupt()


class PaymentsUser(HttpUser):
    """Locust user simulating payment traffic.

    Weighted distribution:
    - 75% settled via webhook
    - 25% cancelled before settlement
    """

    wait_time = between(0.5, 2.0)
    tasks = {
        PaymentSettledJourney: 3,
        PaymentCancelledJourney: 1,
    }
