"""Secrets never reach log output."""

from payments.utils.logging import MASK, get_log_level, redact_secrets


def test_top_level_secrets_masked():
    event = redact_secrets(None, "info", {"event": "x", "account_number": "12345678", "signature": "abc"})
    assert event["account_number"] == MASK
    assert event["signature"] == MASK
    assert event["event"] == "x"


def test_nested_wire_keys_masked():
    event = redact_secrets(
        None,
        "info",
        {"event": "x", "details": {"accountNumber": "12345678", "bsb": "062-000"}, "items": [{"signature": "s"}]},
    )
    assert event["details"] == {"accountNumber": MASK, "bsb": "062-000"}
    assert event["items"] == [{"signature": MASK}]


def test_non_secret_fields_untouched():
    event = redact_secrets(None, "info", {"event": "x", "signature_valid": False, "payment_id": "p1"})
    assert event == {"event": "x", "signature_valid": False, "payment_id": "p1"}


def test_log_level_override(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "error")
    assert get_log_level() == "ERROR"


def test_log_level_follows_environment(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("PROTEAN_ENV", "production")
    assert get_log_level() == "INFO"
