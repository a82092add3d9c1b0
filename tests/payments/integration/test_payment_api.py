"""Integration tests for Payment API endpoints via TestClient."""

from payments.order.order import Order
from payments.payment.lifecycle import apply_status
from payments.payment.payment import Payment, PaymentStatus
from protean import current_domain

CUSTOMER = {"X-User-Id": "user-001"}
OTHER_CUSTOMER = {"X-User-Id": "user-002"}
ADMIN = {"X-User-Id": "admin-001", "X-User-Role": "admin"}


def _complete(payment_id: str) -> None:
    apply_status(current_domain.repository_for(Payment).get(payment_id), PaymentStatus.COMPLETED, "webhook")


class TestCreatePaymentAPI:
    def test_returns_201_with_instructions(self, create_via_api):
        response = create_via_api()

        assert response.status_code == 201
        data = response.json()
        assert data["payment"]["status"] == "pending"
        assert data["payment"]["paymentMethod"] == "bpay"
        assert data["payment"]["userId"] == "user-001"
        assert data["payment"]["paymentDetails"]["billerCode"] == "123456"
        assert data["payment"]["statusStale"] is False
        assert data["instructions"]["type"] == "bpay"
        assert data["expiresAt"] is not None

    def test_links_order(self, create_via_api, order_factory):
        order = order_factory()
        payment_id = create_via_api(order).json()["payment"]["id"]

        stored = current_domain.repository_for(Order).get(str(order.id))
        assert str(stored.payment_id) == payment_id
        assert stored.status == "pending"

    def test_requires_authentication(self, client, order_factory):
        response = client.post("/payments", json={"orderId": str(order_factory().id)})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized", "code": "unauthorized"}

    def test_amount_mismatch(self, create_via_api):
        response = create_via_api(amount=499.0)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "amount_mismatch"
        assert body["details"] == {"expected": 500.0, "received": 499.0}

    def test_unsupported_currency(self, create_via_api):
        response = create_via_api(currency="USD")
        assert response.status_code == 400
        assert response.json()["code"] == "unsupported_currency"

    def test_duplicate_is_conflict(self, create_via_api, order_factory):
        order = order_factory()
        first = create_via_api(order).json()["payment"]["id"]

        response = create_via_api(order)

        assert response.status_code == 409
        assert response.json()["code"] == "duplicate_payment"
        assert response.json()["details"]["payment_id"] == first

    def test_missing_fields_are_listed(self, client, order_factory):
        response = client.post(
            "/payments",
            json={"orderId": str(order_factory().id), "amount": 500.0, "currency": "AUD"},
            headers=CUSTOMER,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "validation_error"
        fields = {error["field"] for error in body["details"]["errors"]}
        assert {"paymentMethod", "paymentDetails"} <= fields

    def test_nan_amount_is_validation_error(self, client, order_factory):
        order = order_factory()
        raw = (
            '{"orderId": "%s", "amount": NaN, "currency": "AUD", "paymentMethod": "bpay",'
            ' "paymentDetails": {"billerCode": "123456", "reference": "EH24011500", "amount": 500.0}}'
        ) % order.id

        response = client.post("/payments", content=raw, headers={**CUSTOMER, "content-type": "application/json"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "validation_error"
        assert "amount" in {error["field"] for error in body["details"]["errors"]}

    def test_invalid_details(self, create_via_api, bpay_details):
        response = create_via_api(paymentDetails=bpay_details(500.0, billerCode="x"))
        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "billerCode"

    def test_details_for_another_rail(self, create_via_api):
        response = create_via_api(paymentDetails={"payId": "0412345678", "payIdType": "phone", "amount": 500.0})
        assert response.status_code == 400
        assert response.json()["code"] == "payment_method_mismatch"

    def test_order_of_another_user(self, create_via_api, order_factory):
        response = create_via_api(order_factory(user_id="user-002"))
        assert response.status_code == 403

    def test_unknown_order(self, create_via_api, order_factory):
        response = create_via_api(orderId="no-such-order")
        assert response.status_code == 404

    def test_provider_failure(self, create_via_api, gateway):
        gateway.configure(timeout=True)

        response = create_via_api()

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "gateway_error"
        assert body["details"]["retryable"] is True
        assert current_domain.repository_for(Payment)._dao.query.all().items == []


class TestGetPaymentAPI:
    def test_owner_can_read(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]

        response = client.get(f"/payments/{payment_id}", headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json()["id"] == payment_id

    def test_other_customer_forbidden(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        assert client.get(f"/payments/{payment_id}", headers=OTHER_CUSTOMER).status_code == 403

    def test_admin_can_read(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        assert client.get(f"/payments/{payment_id}", headers=ADMIN).status_code == 200

    def test_not_found(self, client):
        response = client.get("/payments/no-such-payment", headers=CUSTOMER)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_refreshes_from_provider(self, client, create_via_api, gateway):
        payment_id = create_via_api().json()["payment"]["id"]
        gateway.configure(provider_status="paid")

        response = client.get(f"/payments/{payment_id}", headers=CUSTOMER)

        assert response.json()["status"] == "completed"
        assert response.json()["completedAt"] is not None

    def test_provider_down_serves_stored_status(self, client, create_via_api, gateway):
        payment_id = create_via_api().json()["payment"]["id"]
        gateway.configure(timeout=True)

        response = client.get(f"/payments/{payment_id}", headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert response.json()["statusStale"] is True


class TestListPaymentsAPI:
    def test_customer_sees_only_own(self, client, create_via_api, order_factory):
        create_via_api()
        create_via_api()
        other = order_factory(user_id="user-002")
        client.post(
            "/payments",
            json={
                "orderId": str(other.id),
                "amount": 500.0,
                "currency": "AUD",
                "paymentMethod": "payid",
                "paymentDetails": {"payId": "jo@example.com", "payIdType": "email", "amount": 500.0},
            },
            headers=OTHER_CUSTOMER,
        )

        response = client.get("/payments?userId=user-002", headers=CUSTOMER)

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"]["total"] == 2
        assert {p["userId"] for p in body["payments"]} == {"user-001"}

    def test_admin_filters_by_user(self, client, create_via_api):
        create_via_api()
        response = client.get("/payments?userId=user-001", headers=ADMIN)
        assert response.json()["pagination"]["total"] == 1

    def test_pagination(self, client, create_via_api):
        for _ in range(3):
            create_via_api()

        response = client.get("/payments?page=2&limit=2", headers=CUSTOMER)

        assert response.json()["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
        assert len(response.json()["payments"]) == 1

    def test_limit_capped(self, client):
        assert client.get("/payments?limit=500", headers=CUSTOMER).status_code == 400

    def test_filter_by_status(self, client, create_via_api):
        first = create_via_api().json()["payment"]["id"]
        create_via_api()
        _complete(first)

        response = client.get("/payments?status=completed", headers=CUSTOMER)

        assert [p["id"] for p in response.json()["payments"]] == [first]

    def test_naive_date_bounds_are_read_as_utc(self, client, create_via_api):
        create_via_api()

        included = client.get("/payments?startDate=2024-01-01T00:00:00", headers=CUSTOMER)
        excluded = client.get("/payments?endDate=2024-01-01T00:00:00", headers=CUSTOMER)

        assert included.status_code == 200
        assert included.json()["pagination"]["total"] == 1
        assert excluded.status_code == 200
        assert excluded.json()["pagination"]["total"] == 0

    def test_offset_date_bounds(self, client, create_via_api):
        create_via_api()

        response = client.get("/payments", params={"startDate": "2024-01-01T10:00:00+10:00"}, headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 1


class TestUpdatePaymentAPI:
    def test_admin_override(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]

        response = client.put(
            f"/payments/{payment_id}", json={"status": "completed", "metadata": {"ticket": "SUP-1"}}, headers=ADMIN
        )

        assert response.status_code == 200
        body = response.json()
        assert body["statusChanged"] is True
        assert body["payment"]["status"] == "completed"
        assert body["payment"]["metadata"]["lastOverrideBy"] == "admin-001"

    def test_customer_forbidden(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        response = client.put(f"/payments/{payment_id}", json={"status": "completed"}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_unknown_status(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        response = client.put(f"/payments/{payment_id}", json={"status": "settled"}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "status"

    def test_unreachable_status_reports_unchanged(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        _complete(payment_id)

        response = client.put(f"/payments/{payment_id}", json={"status": "pending"}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["statusChanged"] is False
        assert response.json()["payment"]["status"] == "completed"


class TestCancelPaymentAPI:
    def test_owner_cancels(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]

        response = client.delete(f"/payments/{payment_id}?reason=Found%20a%20better%20price", headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancellationReason"] == "Found a better price"

    def test_other_customer_forbidden(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        assert client.delete(f"/payments/{payment_id}", headers=OTHER_CUSTOMER).status_code == 403

    def test_completed_payment_cannot_be_cancelled(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        _complete(payment_id)

        response = client.delete(f"/payments/{payment_id}", headers=CUSTOMER)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_state_transition"
        assert response.json()["details"]["current_status"] == "completed"


class TestRefundAPI:
    def test_admin_refunds_completed_payment(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        _complete(payment_id)

        response = client.post(f"/payments/{payment_id}/refund", json={"reason": "Faulty"}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["status"] == "refunded"
        assert response.json()["refundAmount"] == 500.0

    def test_customer_forbidden(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        _complete(payment_id)
        response = client.post(f"/payments/{payment_id}/refund", json={"reason": "Faulty"}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_reason_required(self, client, create_via_api):
        payment_id = create_via_api().json()["payment"]["id"]
        _complete(payment_id)
        response = client.post(f"/payments/{payment_id}/refund", json={}, headers=ADMIN)
        assert response.status_code == 400


class TestGatewayConfigurationAPI:
    def test_configures_fake(self, client, gateway):
        response = client.post("/payments/gateway/configure", json={"shouldSucceed": False, "failureReason": "Down"})

        assert response.status_code == 200
        assert response.json()["shouldSucceed"] is False
        assert gateway.should_succeed is False
        assert gateway.failure_reason == "Down"

    def test_unavailable_in_production(self, client, monkeypatch):
        monkeypatch.setenv("PROTEAN_ENV", "production")
        response = client.post("/payments/gateway/configure", json={"shouldSucceed": False})
        assert response.status_code == 403
