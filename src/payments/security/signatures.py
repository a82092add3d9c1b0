"""Webhook signature and replay-window checks.

Providers sign the exact raw request body with HMAC-SHA256 using a shared
secret and send the hex digest in a header. Verification must run over the
bytes as received; re-serialising parsed JSON changes the digest.
"""

import hashlib
import hmac
import time
from enum import Enum

from payments.errors import ConfigurationError

DEFAULT_MAX_AGE_SECONDS = 300
FUTURE_SKEW_SECONDS = 60


class Freshness(Enum):
    FRESH = "fresh"
    STALE = "stale"
    FUTURE = "future"


def compute_signature(raw_body: bytes, shared_secret: str) -> str:
    """Hex HMAC-SHA256 of ``raw_body`` keyed by ``shared_secret``."""
    return hmac.new(shared_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes | str, signature_header: str | None, shared_secret: str | None) -> bool:
    """Return True when ``signature_header`` is the HMAC-SHA256 of ``raw_body``.

    A missing secret is a deployment fault and raises ``ConfigurationError``.
    A missing or malformed signature is simply not valid.
    """
    if not shared_secret:
        raise ConfigurationError("Webhook secret not configured")

    if not signature_header:
        return False

    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")

    provided = signature_header.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256=") :]

    expected = compute_signature(raw_body, shared_secret)

    # compare_digest wants matching types; non-ASCII input can't be a hex digest
    try:
        return hmac.compare_digest(provided.lower().encode("ascii"), expected.encode("ascii"))
    except UnicodeEncodeError:
        return False


def check_timestamp(
    timestamp: int | float,
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
    now: int | float | None = None,
) -> Freshness:
    """Classify a webhook timestamp (Unix seconds) against the replay window."""
    current = time.time() if now is None else now
    age = float(current) - float(timestamp)

    if age < -FUTURE_SKEW_SECONDS:
        return Freshness.FUTURE
    if age > max_age_seconds:
        return Freshness.STALE
    return Freshness.FRESH


def is_timestamp_fresh(
    timestamp: int | float,
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
    now: int | float | None = None,
) -> bool:
    return check_timestamp(timestamp, max_age_seconds, now) is Freshness.FRESH
