"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the domain's validation rules
(Australian addresses, BSB format, BPAY biller codes and so on) and use the
camelCase field names the API's Pydantic request schemas expect.
"""

import hashlib
import hmac
import json
import os
import random
import time
import uuid
from datetime import UTC, datetime, timedelta

from faker import Faker

fake = Faker("en_AU")

AU_STATES = ["NSW", "VIC", "QLD", "SA", "WA", "TAS", "NT", "ACT"]

# Must match the secrets the server was started with
WEBHOOK_SECRETS = {
    "bpay": os.environ.get("BPAY_WEBHOOK_SECRET", "loadtest-bpay-secret"),
    "payid": os.environ.get("PAYID_WEBHOOK_SECRET", "loadtest-payid-secret"),
    "gocardless": os.environ.get("GOCARDLESS_WEBHOOK_SECRET", "loadtest-gocardless-secret"),
    "bank_transfer": os.environ.get("BANK_WEBHOOK_SECRET", "loadtest-bank-secret"),
}

SIGNATURE_HEADERS = {
    "bpay": "X-BPAY-Signature",
    "payid": "X-PayID-Signature",
    "gocardless": "Webhook-Signature",
    "bank_transfer": "X-Bank-Signature",
}

# ---------- Identity ----------


def user_headers(user_id: str | None = None, role: str = "customer") -> dict:
    """Headers the upstream auth layer and proxy would forward; one client address per user."""
    return {
        "X-User-Id": user_id or f"user-{uuid.uuid4().hex[:8]}",
        "X-User-Role": role,
        "X-Forwarded-For": fake.ipv4_public(),
    }


# ---------- Orders ----------


def address_data() -> dict:
    return {
        "name": fake.name()[:255],
        "line1": fake.street_address()[:255],
        "city": fake.city()[:100],
        "state": random.choice(AU_STATES),
        "postalCode": f"{random.randint(200, 9999):04d}",
    }


def order_data() -> dict:
    """Generate PlaceOrderRequest payload: a battery, sometimes with panels and install."""
    items = [
        {
            "productId": f"bat-{uuid.uuid4().hex[:8]}",
            "productType": "battery",
            "quantity": 1,
            "unitPrice": round(random.uniform(6000, 14000), 2),
        }
    ]
    if random.random() < 0.5:
        items.append(
            {
                "productId": f"sol-{uuid.uuid4().hex[:8]}",
                "productType": "solar",
                "quantity": random.randint(6, 20),
                "unitPrice": round(random.uniform(180, 320), 2),
            }
        )
    if random.random() < 0.3:
        items.append(
            {
                "productId": f"svc-{uuid.uuid4().hex[:8]}",
                "productType": "service",
                "quantity": 1,
                "unitPrice": round(random.uniform(800, 2500), 2),
            }
        )
    return {"items": items, "shippingAddress": address_data()}


# ---------- Payments ----------


def bpay_details(amount: float) -> dict:
    return {
        "billerCode": str(random.randint(100000, 999999)),
        "reference": f"EH{uuid.uuid4().hex[:10].upper()}",
        "amount": amount,
        "expiryDate": (datetime.now(UTC) + timedelta(days=14)).isoformat(),
    }


def payid_details(amount: float) -> dict:
    return {
        "payId": fake.email(),
        "payIdType": "email",
        "amount": amount,
        "description": "Energi Hive battery order",
    }


def bank_transfer_details(amount: float) -> dict:
    return {
        "accountName": fake.name()[:100],
        "bsb": f"{random.randint(0, 999):03d}-{random.randint(0, 999):03d}",
        "accountNumber": str(random.randint(10**7, 10**9)),
        "amount": amount,
        "reference": f"EH{uuid.uuid4().hex[:8].upper()}",
    }


_DETAILS = {
    "bpay": bpay_details,
    "payid": payid_details,
    "bank_transfer": bank_transfer_details,
}


def payment_data(order_id: str, total: float, method: str | None = None) -> dict:
    """Generate CreatePaymentRequest payload for an order of ``total``."""
    method = method or random.choice(list(_DETAILS))
    return {
        "orderId": order_id,
        "amount": total,
        "currency": "AUD",
        "paymentMethod": method,
        "paymentDetails": _DETAILS[method](total),
        "receiptEmail": fake.email(),
    }


def signed_webhook(provider: str, payload: dict) -> tuple[bytes, dict]:
    """Serialise ``payload`` once and sign those exact bytes, as a provider would."""
    body = json.dumps({**payload, "timestamp": int(time.time())}).encode("utf-8")
    signature = hmac.new(WEBHOOK_SECRETS[provider].encode("utf-8"), body, hashlib.sha256).hexdigest()
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Provider": provider,
        SIGNATURE_HEADERS[provider]: signature,
    }
    return body, headers


def webhook_data(payment: dict, status: str) -> dict:
    """Provider callback body for a created payment (as returned by POST /payments)."""
    return {
        "paymentMethod": payment["paymentMethod"],
        "paymentId": payment.get("providerPaymentId"),
        "reference": payment.get("providerReference"),
        "status": status,
    }
