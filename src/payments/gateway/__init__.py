"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations per rail:
- FakeGateway for development and testing (PAYMENTS_GATEWAY_MODE=fake)
- BpayGateway, PayIdGateway, BankTransferGateway and DirectDebitGateway
  against the live providers (PAYMENTS_GATEWAY_MODE=live)
"""

from payments.config import get_settings
from payments.gateway.direct_debit import DirectDebitGateway
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway
from payments.gateway.rails import BankTransferGateway, BpayGateway, PayIdGateway
from payments.payment.details import PaymentMethodType

_LIVE_GATEWAYS = {
    PaymentMethodType.BPAY: BpayGateway,
    PaymentMethodType.PAYID: PayIdGateway,
    PaymentMethodType.DIRECT_DEBIT: DirectDebitGateway,
    PaymentMethodType.BANK_TRANSFER: BankTransferGateway,
}

if set(_LIVE_GATEWAYS) != set(PaymentMethodType):
    raise RuntimeError("Every payment method needs a live gateway")

_current_gateways: dict[PaymentMethodType, PaymentGateway] = {}
_fake_gateway: FakeGateway | None = None


def get_gateway(method: PaymentMethodType | str) -> PaymentGateway:
    """Return the gateway for ``method``. Defaults follow PAYMENTS_GATEWAY_MODE."""
    global _fake_gateway
    method = PaymentMethodType(method)
    if method not in _current_gateways:
        settings = get_settings()
        if settings.gateway_mode == "live":
            _current_gateways[method] = _LIVE_GATEWAYS[method](settings)
        else:
            if _fake_gateway is None:
                _fake_gateway = FakeGateway()
            _current_gateways[method] = _fake_gateway
    return _current_gateways[method]


def set_gateway(method: PaymentMethodType | str | None, gateway: PaymentGateway) -> None:
    """Override the gateway for one rail, or for every rail when ``method`` is None (useful for tests)."""
    if method is None:
        for each in PaymentMethodType:
            _current_gateways[each] = gateway
    else:
        _current_gateways[PaymentMethodType(method)] = gateway


def reset_gateways() -> None:
    """Reset to default gateways."""
    global _fake_gateway
    _current_gateways.clear()
    _fake_gateway = None
