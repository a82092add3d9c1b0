"""Tests for inbound provider callbacks: authentication, matching, application and audit."""

import contextvars
import threading
import time

import pytest
from payments.order.order import Order, OrderStatus
from payments.payment.lifecycle import apply_status
from payments.payment.payment import Payment
from payments.webhook.event import FailureReason, MatchStrategy, WebhookEvent
from payments.webhook.reconciler import WebhookReconciler
from protean import current_domain


@pytest.fixture()
def payment(gateway, order_factory, create_payment):
    created = create_payment(order_factory())
    return current_domain.repository_for(Payment).get(created.payment_id)


@pytest.fixture()
def reconciler():
    return WebhookReconciler()


def _audits() -> list[WebhookEvent]:
    return current_domain.repository_for(WebhookEvent)._dao.query.all().items


def _reload(payment) -> Payment:
    return current_domain.repository_for(Payment).get(str(payment.id))


class TestSettlement:
    def test_paid_bpay_callback_completes_payment_and_order(self, payment, reconciler, make_webhook):
        body, headers = make_webhook(
            "bpay", paymentId=payment.provider_payment_id, status="paid", amount=500.0, paymentMethod="bpay"
        )

        result = reconciler.handle(body, headers)

        assert result.status_code == 200
        assert result.body == {
            "received": True,
            "paymentId": str(payment.id),
            "status": "completed",
            "statusChanged": True,
        }
        assert _reload(payment).status == "completed"
        order = current_domain.repository_for(Order).get(str(payment.order_id))
        assert order.status == OrderStatus.PAID.value

        audits = _audits()
        assert len(audits) == 1
        assert audits[0].success is True
        assert audits[0].signature_valid is True
        assert audits[0].match_strategy == MatchStrategy.PROVIDER_PAYMENT_ID.value
        assert audits[0].mapped_status == "completed"
        assert str(audits[0].payment_id) == str(payment.id)

    def test_match_by_reference(self, payment, reconciler, make_webhook):
        body, headers = make_webhook("bpay", reference=payment.provider_reference, status="processing")

        result = reconciler.handle(body, headers)

        assert result.status_code == 200
        assert _reload(payment).status == "processing"
        assert _audits()[0].match_strategy == MatchStrategy.PROVIDER_REFERENCE.value

    def test_duplicate_delivery_is_audited_and_harmless(self, payment, reconciler, make_webhook):
        body, headers = make_webhook("bpay", paymentId=payment.provider_payment_id, status="paid")

        first = reconciler.handle(body, headers)
        second = reconciler.handle(body, headers)

        assert first.body["statusChanged"] is True
        assert second.status_code == 200
        assert second.body["statusChanged"] is False
        assert len(_audits()) == 2
        assert len(current_domain.repository_for(WebhookEvent).for_payment(str(payment.id))) == 2

    def test_concurrent_deliveries_apply_once(self, payment, reconciler, make_webhook, monkeypatch):
        rendezvous = threading.Barrier(2, timeout=5)

        def _after_both_matched(matched, status, source):
            rendezvous.wait()
            return apply_status(matched, status, source=source)

        monkeypatch.setattr("payments.webhook.reconciler.apply_status", _after_both_matched)
        delivery = make_webhook("bpay", paymentId=payment.provider_payment_id, status="paid")
        results = [None, None]

        def _deliver(index):
            results[index] = reconciler.handle(*delivery)

        threads = [threading.Thread(target=contextvars.copy_context().run, args=(_deliver, i)) for i in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert [result.status_code for result in results] == [200, 200]
        assert sorted(result.body["statusChanged"] for result in results) == [False, True]
        assert _reload(payment).status == "completed"
        audits = _audits()
        assert len(audits) == 2
        assert all(audit.success for audit in audits)
        assert sum(bool(audit.status_changed) for audit in audits) == 1

    def test_late_callback_after_terminal_state(self, payment, reconciler, make_webhook):
        reconciler.handle(*make_webhook("bpay", paymentId=payment.provider_payment_id, status="failed"))
        result = reconciler.handle(*make_webhook("bpay", paymentId=payment.provider_payment_id, status="paid"))

        assert result.status_code == 200
        assert result.body["status"] == "failed"
        assert result.body["statusChanged"] is False

    def test_unknown_provider_status_maps_to_pending(self, payment, reconciler, make_webhook):
        result = reconciler.handle(*make_webhook("bpay", paymentId=payment.provider_payment_id, status="mystery"))
        assert result.status_code == 200
        assert result.body["status"] == "pending"
        assert _audits()[0].provider_status == "mystery"

    def test_fresh_timestamp_header_accepted(self, payment, reconciler, make_webhook):
        body, headers = make_webhook(
            "bpay",
            headers={"Webhook-Timestamp": str(int(time.time()))},
            paymentId=payment.provider_payment_id,
            status="paid",
        )
        assert reconciler.handle(body, headers).status_code == 200


class TestAuthentication:
    def test_bad_signature(self, payment, reconciler, make_webhook):
        body, headers = make_webhook(
            "bpay", secret="wrong-secret", paymentId=payment.provider_payment_id, status="paid"
        )

        result = reconciler.handle(body, headers)

        assert result.status_code == 401
        assert result.body == {"error": "Unauthorized"}
        assert _reload(payment).status == "pending"
        audit = _audits()[0]
        assert audit.signature_valid is False
        assert audit.failure_reason == FailureReason.INVALID_SIGNATURE.value

    def test_missing_signature(self, payment, reconciler):
        result = reconciler.handle(b'{"status": "paid"}', {"Content-Type": "application/json"})

        assert result.status_code == 401
        assert _audits()[0].failure_reason == FailureReason.MISSING_SIGNATURE.value

    def test_declared_provider_without_its_header(self, reconciler):
        result = reconciler.handle(b"{}", {"X-Webhook-Provider": "payid", "X-Bpay-Signature": "abc"})
        assert result.status_code == 401
        assert _audits()[0].failure_reason == FailureReason.MISSING_SIGNATURE.value

    def test_unknown_provider(self, reconciler):
        result = reconciler.handle(b"{}", {"X-Webhook-Provider": "paypal", "X-Bpay-Signature": "abc"})
        assert result.status_code == 401
        assert _audits()[0].failure_reason == FailureReason.UNKNOWN_PROVIDER.value

    def test_provider_inferred_from_signature_header(self, payment, reconciler, make_webhook):
        body, headers = make_webhook("bpay", paymentId=payment.provider_payment_id, status="paid")
        del headers["X-Webhook-Provider"]

        assert reconciler.handle(body, headers).status_code == 200

    def test_stale_timestamp(self, payment, reconciler, make_webhook):
        body, headers = make_webhook(
            "bpay",
            headers={"Webhook-Timestamp": str(int(time.time()) - 3600)},
            paymentId=payment.provider_payment_id,
            status="paid",
        )

        result = reconciler.handle(body, headers)

        assert result.status_code == 401
        assert _reload(payment).status == "pending"
        assert _audits()[0].failure_reason == FailureReason.STALE_TIMESTAMP.value

    def test_future_timestamp_in_body(self, payment, reconciler, make_webhook):
        body, headers = make_webhook(
            "bpay", timestamp=int(time.time()) + 3600, paymentId=payment.provider_payment_id, status="paid"
        )
        result = reconciler.handle(body, headers)
        assert result.status_code == 401
        assert _audits()[0].failure_reason == FailureReason.FUTURE_TIMESTAMP.value


class TestMalformedAndUnmatched:
    def test_body_not_json(self, reconciler, make_webhook):
        from payments.security.signatures import compute_signature

        body = b"not json"
        headers = {"X-Webhook-Provider": "bpay", "X-Bpay-Signature": compute_signature(body, "test-bpay-secret")}

        result = reconciler.handle(body, headers)

        assert result.status_code == 400
        audit = _audits()[0]
        assert audit.signature_valid is True
        assert audit.raw_payload == "not json"
        assert audit.failure_reason == FailureReason.MALFORMED_PAYLOAD.value

    def test_no_identifier(self, reconciler, make_webhook):
        result = reconciler.handle(*make_webhook("bpay", status="paid"))
        assert result.status_code == 400

    def test_method_must_match_signing_provider(self, payment, reconciler, make_webhook):
        body, headers = make_webhook(
            "payid", paymentId=payment.provider_payment_id, status="paid", paymentMethod="bpay"
        )

        result = reconciler.handle(body, headers)

        assert result.status_code == 400
        assert _reload(payment).status == "pending"

    def test_provider_id_scoped_to_method(self, payment, reconciler, make_webhook):
        body, headers = make_webhook("payid", paymentId=payment.provider_payment_id, status="paid")

        result = reconciler.handle(body, headers)

        assert result.status_code == 404
        assert _reload(payment).status == "pending"

    def test_unknown_payment(self, gateway, reconciler, make_webhook):
        result = reconciler.handle(*make_webhook("bpay", paymentId="fake_bpay_unknown", status="paid"))

        assert result.status_code == 404
        assert result.body == {"error": "Payment not found"}
        unmatched = current_domain.repository_for(WebhookEvent).unmatched()
        assert len(unmatched) == 1
        assert unmatched[0].provider_payment_id == "fake_bpay_unknown"
        assert unmatched[0].match_strategy == MatchStrategy.NONE.value

    def test_ambiguous_reference(self, payment, order_factory, create_payment, reconciler, make_webhook):
        other = current_domain.repository_for(Payment).get(create_payment(order_factory()).payment_id)
        other.provider_reference = payment.provider_reference
        current_domain.repository_for(Payment).add(other)

        result = reconciler.handle(*make_webhook("bpay", reference=payment.provider_reference, status="paid"))

        assert result.status_code == 409
        assert _reload(payment).status == "pending"
        assert _reload(other).status == "pending"
        assert _audits()[0].failure_reason == FailureReason.AMBIGUOUS_MATCH.value


class TestFailureIsolation:
    def test_internal_error_is_audited(self, payment, reconciler, make_webhook, monkeypatch):
        def _explode(*args, **kwargs):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr("payments.webhook.reconciler.apply_status", _explode)

        result = reconciler.handle(*make_webhook("bpay", paymentId=payment.provider_payment_id, status="paid"))

        assert result.status_code == 500
        assert result.body == {"error": "Internal server error"}
        audit = _audits()[0]
        assert audit.failure_reason == FailureReason.INTERNAL_ERROR.value
        assert "database unavailable" in audit.error

    def test_audit_failure_does_not_change_outcome(self, payment, reconciler, make_webhook, monkeypatch):
        from payments.webhook.event import WebhookEventRepository

        def _explode(self, **fields):
            raise RuntimeError("audit store down")

        monkeypatch.setattr(WebhookEventRepository, "record", _explode)

        result = reconciler.handle(*make_webhook("bpay", paymentId=payment.provider_payment_id, status="paid"))

        assert result.status_code == 200
        assert _reload(payment).status == "completed"
