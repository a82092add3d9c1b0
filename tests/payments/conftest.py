import pytest
from payments.config import PaymentSettings, reset_settings, set_settings
from payments.gateway import reset_gateways, set_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.security.vault import CredentialVault, reset_vault, set_vault
from protean import current_domain
from protean.integrations.pytest import DomainFixture

TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"

TEST_WEBHOOK_SECRETS = {
    "bpay": "test-bpay-secret",
    "payid": "test-payid-secret",
    "gocardless": "test-gocardless-secret",
    "bank_transfer": "test-bank-secret",
}


@pytest.fixture(scope="session")
def payments_bed():
    from payments.domain import payments

    bed = DomainFixture(payments)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(payments_bed):
    with payments_bed.domain_context():
        yield

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()


@pytest.fixture()
def settings():
    return PaymentSettings(webhook_secrets=TEST_WEBHOOK_SECRETS, encryption_key=TEST_ENCRYPTION_KEY)


@pytest.fixture(autouse=True)
def _runtime(settings):
    """Fake secrets, a fixed vault key and a fresh fake provider for every test."""
    set_settings(settings)
    set_vault(CredentialVault(TEST_ENCRYPTION_KEY))
    yield
    reset_gateways()
    reset_vault()
    reset_settings()


@pytest.fixture()
def gateway():
    fake = FakeGateway()
    set_gateway(None, fake)
    return fake


# ---------------------------------------------------------------------------
# Orders and payments
# ---------------------------------------------------------------------------
OWNER_ID = "user-001"


def _bpay_details(amount: float, **overrides) -> dict:
    details = {
        "billerCode": "123456",
        "reference": "EH24011500",
        "amount": amount,
        "expiryDate": "2099-01-01T00:00:00+00:00",
    }
    details.update(overrides)
    return details


@pytest.fixture()
def order_factory():
    """Persist a draft order whose total is exactly ``total`` (GST-inclusive)."""
    from datetime import UTC, datetime

    from payments.order.order import Order, OrderItem, generate_order_number

    def _make(total: float = 500.00, user_id: str = OWNER_ID) -> Order:
        subtotal = round(total / 1.1, 2)
        tax = round(total - subtotal, 2)
        now = datetime.now(UTC)
        order = Order(
            user_id=user_id,
            order_number=generate_order_number(now),
            items=[
                OrderItem(
                    product_id="bat-001",
                    product_type="battery",
                    quantity=1,
                    unit_price=subtotal,
                    total_price=subtotal,
                )
            ],
            subtotal=subtotal,
            tax=tax,
            total=total,
            created_at=now,
            updated_at=now,
        )
        current_domain.repository_for(Order).add(order)
        return current_domain.repository_for(Order).get(str(order.id))

    return _make


@pytest.fixture()
def create_payment():
    """Process CreatePayment for ``order``; BPAY details for the order total by default."""
    import json

    from payments.payment.creation import CreatePayment, submit_payment

    def _create(order, method: str = "bpay", details: dict | None = None, **overrides):
        fields = {
            "user_id": str(order.user_id),
            "order_id": str(order.id),
            "amount": order.total,
            "currency": "AUD",
            "payment_method": method,
            "payment_details": json.dumps(details if details is not None else _bpay_details(order.total)),
        }
        fields.update(overrides)
        return submit_payment(CreatePayment(**fields))

    return _create


@pytest.fixture()
def bpay_details():
    """Builder for a valid BPAY detail payload."""
    return _bpay_details


@pytest.fixture()
def make_webhook():
    """Body and headers for a signed provider callback."""
    import json

    from payments.security.signatures import compute_signature

    def _make(provider: str = "bpay", secret: str | None = None, headers: dict | None = None, **payload):
        from payments.webhook.reconciler import SIGNATURE_HEADERS

        raw_body = json.dumps(payload).encode("utf-8")
        signature = compute_signature(raw_body, secret or TEST_WEBHOOK_SECRETS[provider])
        signed = {"X-Webhook-Provider": provider, SIGNATURE_HEADERS[provider]: signature}
        signed.update(headers or {})
        return raw_body, signed

    return _make
