"""Shared BDD fixtures and step definitions for the Payments domain."""

import pytest
from payments.order.order import Order
from payments.payment.payment import Payment
from payments.webhook.event import WebhookEvent
from payments.webhook.reconciler import WebhookReconciler
from protean import current_domain
from pytest_bdd import given, parsers, then, when


@pytest.fixture()
def error():
    """Container for exceptions raised in When steps."""
    return {"exc": None}


@pytest.fixture()
def webhook():
    """Last webhook result."""
    return {"result": None}


def _reload_payment(payment) -> Payment:
    return current_domain.repository_for(Payment).get(str(payment.id))


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("an order of {total:f} for customer {user_id}"), target_fixture="order")
def _order(order_factory, total, user_id):
    return order_factory(total=total, user_id=user_id)


@given("a BPAY payment has been created for the order", target_fixture="payment")
def _bpay_payment(gateway, order, create_payment):
    created = create_payment(order)
    return current_domain.repository_for(Payment).get(created.payment_id)


@given("the provider is refusing requests")
def _provider_refusing(gateway):
    gateway.configure(should_succeed=False, failure_reason="Provider maintenance")


# ---------------------------------------------------------------------------
# When steps (also usable as Given)
# ---------------------------------------------------------------------------
@given(parsers.cfparse("the {provider} provider reports the payment as {status}"))
@when(parsers.cfparse("the {provider} provider reports the payment as {status}"))
def _provider_reports(provider, status, payment, make_webhook, webhook):
    body, headers = make_webhook(provider, paymentId=payment.provider_payment_id, status=status)
    webhook["result"] = WebhookReconciler().handle(body, headers)


@when(parsers.cfparse("a forged {provider} callback reports the payment as {status}"))
def _forged_callback(provider, status, payment, make_webhook, webhook):
    body, headers = make_webhook(provider, secret="forged", paymentId=payment.provider_payment_id, status=status)
    webhook["result"] = WebhookReconciler().handle(body, headers)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the webhook is accepted with status {code:d}"))
@then(parsers.cfparse("the webhook is rejected with status {code:d}"))
def _webhook_status(webhook, code):
    assert webhook["result"].status_code == code


@then(parsers.cfparse("the payment status is {status}"))
def _payment_status(payment, status):
    assert _reload_payment(payment).status == status


@then(parsers.cfparse("the order status is {status}"))
def _order_status(order, status):
    assert current_domain.repository_for(Order).get(str(order.id)).status == status


@then(parsers.cfparse("{count:d} webhook event is audited"))
@then(parsers.cfparse("{count:d} webhook events are audited"))
def _audited(count):
    assert len(current_domain.repository_for(WebhookEvent)._dao.query.all().items) == count
