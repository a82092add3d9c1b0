import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from payments.api.errors import register_error_handlers
from payments.api.rate_limit import get_limiter
from payments.api.routes import order_router, payment_router


@pytest.fixture()
def client(gateway):
    get_limiter().reset()
    app = FastAPI()
    app.include_router(payment_router)
    app.include_router(order_router)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def create_via_api(client, order_factory, bpay_details):
    """POST /payments for a fresh $500 order owned by ``user-001``."""

    def _create(order=None, **overrides):
        order = order or order_factory()
        body = {
            "orderId": str(order.id),
            "amount": order.total,
            "currency": "AUD",
            "paymentMethod": "bpay",
            "paymentDetails": bpay_details(order.total),
        }
        body.update(overrides)
        return client.post("/payments", json=body, headers={"X-User-Id": "user-001"})

    return _create
