"""Runtime settings for the payments core.

Secrets are loaded once from the environment (and a local ``.env`` file) and
injected into the signature verifier, the credential vault and the gateways.
Missing webhook secrets or encryption key abort startup with
``ConfigurationError``; they are never defaulted.

Provides get_settings() / set_settings() / reset_settings() so tests can run
against fake secrets.
"""

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from dotenv import load_dotenv

from payments.errors import ConfigurationError

SUPPORTED_CURRENCY = "AUD"

# Provider tag -> environment variable holding its webhook secret
WEBHOOK_SECRET_VARS = {
    "bpay": "BPAY_WEBHOOK_SECRET",
    "payid": "PAYID_WEBHOOK_SECRET",
    "gocardless": "GOCARDLESS_WEBHOOK_SECRET",
    "bank_transfer": "BANK_WEBHOOK_SECRET",
}

_HEX_KEY = re.compile(r"[0-9a-fA-F]{64}")
_BSB = re.compile(r"[0-9]{3}-[0-9]{3}")


@dataclass(frozen=True)
class RailAccounts:
    """Merchant-side account details shown to payers in instructions."""

    bpay_biller_code: str = "123456"
    bpay_reference_prefix: str = "EHIVE"
    payid_identifier: str = "payments@energihive.com.au"
    payid_business_name: str = "Energi Hive Pty Ltd"
    bank_account_name: str = "Energi Hive Pty Ltd"
    bank_bsb: str = "123-456"
    bank_account_number: str = "12345678"
    bank_reference_prefix: str = "EHIVE"


@dataclass(frozen=True)
class PaymentSettings:
    webhook_secrets: Mapping[str, str]
    encryption_key: str
    currency: str = SUPPORTED_CURRENCY
    gateway_mode: str = "fake"
    gateway_timeout: float = 10.0
    provider_base_url: str = "https://api.rails.energihive.com.au/v1"
    provider_api_key: str = ""
    gocardless_base_url: str = "https://api-sandbox.gocardless.com"
    gocardless_access_token: str = ""
    webhook_max_age_seconds: int = 300
    order_rate_limit: int = 60
    rate_limit_window_seconds: int = 60
    accounts: RailAccounts = field(default_factory=RailAccounts)

    def __post_init__(self) -> None:
        missing = [provider for provider in WEBHOOK_SECRET_VARS if not self.webhook_secrets.get(provider)]
        if missing:
            names = ", ".join(WEBHOOK_SECRET_VARS[provider] for provider in missing)
            raise ConfigurationError(f"Webhook secrets not configured: {names}")

        if not self.encryption_key:
            raise ConfigurationError("ENCRYPTION_KEY environment variable not set")
        if not _HEX_KEY.fullmatch(self.encryption_key):
            raise ConfigurationError("ENCRYPTION_KEY must be 64 hex characters (32 bytes)")

        if self.gateway_mode not in ("fake", "live"):
            raise ConfigurationError("PAYMENTS_GATEWAY_MODE must be either 'fake' or 'live'")
        if self.gateway_timeout <= 0:
            raise ConfigurationError("PAYMENTS_GATEWAY_TIMEOUT must be positive")
        if self.order_rate_limit <= 0 or self.rate_limit_window_seconds <= 0:
            raise ConfigurationError("ORDER_RATE_LIMIT and RATE_LIMIT_WINDOW_SECONDS must be positive")
        if not _BSB.fullmatch(self.accounts.bank_bsb):
            raise ConfigurationError("BANK_BSB must be in format XXX-XXX")

    def webhook_secret(self, provider: str) -> str:
        try:
            return self.webhook_secrets[provider]
        except KeyError:
            raise ConfigurationError(f"No webhook secret configured for provider {provider!r}") from None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PaymentSettings":
        if environ is None:
            load_dotenv()
            environ = os.environ

        defaults = RailAccounts()
        accounts = RailAccounts(
            bpay_biller_code=environ.get("BPAY_BILLER_CODE", defaults.bpay_biller_code),
            bpay_reference_prefix=environ.get("BPAY_CUSTOMER_REFERENCE_PREFIX", defaults.bpay_reference_prefix),
            payid_identifier=environ.get("PAYID_IDENTIFIER", defaults.payid_identifier),
            payid_business_name=environ.get("PAYID_BUSINESS_NAME", defaults.payid_business_name),
            bank_account_name=environ.get("BANK_ACCOUNT_NAME", defaults.bank_account_name),
            bank_bsb=environ.get("BANK_BSB", defaults.bank_bsb),
            bank_account_number=environ.get("BANK_ACCOUNT_NUMBER", defaults.bank_account_number),
            bank_reference_prefix=environ.get("BANK_REFERENCE_PREFIX", defaults.bank_reference_prefix),
        )

        try:
            timeout = float(environ.get("PAYMENTS_GATEWAY_TIMEOUT", "10"))
            max_age = int(environ.get("WEBHOOK_MAX_AGE_SECONDS", "300"))
            order_rate_limit = int(environ.get("ORDER_RATE_LIMIT", "60"))
            rate_window = int(environ.get("RATE_LIMIT_WINDOW_SECONDS", "60"))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc

        return cls(
            webhook_secrets={provider: environ.get(var, "") for provider, var in WEBHOOK_SECRET_VARS.items()},
            encryption_key=environ.get("ENCRYPTION_KEY", ""),
            gateway_mode=environ.get("PAYMENTS_GATEWAY_MODE", "fake").lower(),
            gateway_timeout=timeout,
            provider_base_url=environ.get("PAYMENTS_PROVIDER_URL", cls.provider_base_url),
            provider_api_key=environ.get("PAYMENTS_PROVIDER_API_KEY", ""),
            gocardless_base_url=environ.get("GOCARDLESS_URL", cls.gocardless_base_url),
            gocardless_access_token=environ.get("GOCARDLESS_ACCESS_TOKEN", ""),
            webhook_max_age_seconds=max_age,
            order_rate_limit=order_rate_limit,
            rate_limit_window_seconds=rate_window,
            accounts=accounts,
        )


_current_settings: PaymentSettings | None = None


def get_settings() -> PaymentSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = PaymentSettings.from_env()
    return _current_settings


def set_settings(settings: PaymentSettings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    """Forget the active settings so the next access reloads them."""
    global _current_settings
    _current_settings = None
