"""Tests for provider status vocabulary mapping."""

import pytest
from payments.payment.payment import PaymentStatus
from payments.payment.status_map import map_provider_status


@pytest.mark.parametrize(
    "provider_status, expected",
    [
        ("succeeded", PaymentStatus.COMPLETED),
        ("paid", PaymentStatus.COMPLETED),
        ("confirmed", PaymentStatus.COMPLETED),
        ("paid_out", PaymentStatus.COMPLETED),
        ("completed", PaymentStatus.COMPLETED),
        ("failed", PaymentStatus.FAILED),
        ("declined", PaymentStatus.FAILED),
        ("customer_approval_denied", PaymentStatus.FAILED),
        ("charged_back", PaymentStatus.FAILED),
        ("cancelled", PaymentStatus.CANCELLED),
        ("canceled", PaymentStatus.CANCELLED),
        ("refunded", PaymentStatus.REFUNDED),
        ("processing", PaymentStatus.PROCESSING),
        ("submitted", PaymentStatus.PROCESSING),
        ("pending_submission", PaymentStatus.PROCESSING),
        ("PAID", PaymentStatus.COMPLETED),
        (" Failed ", PaymentStatus.FAILED),
    ],
)
def test_known_terms(provider_status, expected):
    assert map_provider_status(provider_status) is expected


@pytest.mark.parametrize("provider_status", ["", None, "on_hold", "authorised", 42])
def test_unknown_terms_default_to_pending(provider_status):
    assert map_provider_status(provider_status) is PaymentStatus.PENDING
