"""Payment detail variants: one immutable shape per payment rail.

``PaymentDetails`` is a closed union: every rail tag in ``PaymentMethodType``
maps to exactly one dataclass, and the dispatch tables below are checked for
completeness when the module is imported.

Wire form is camelCase (``billerCode``, ``accountNumber``...); stored form is
the same dict, encrypted by the credential vault.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import assert_never


class PaymentMethodType(Enum):
    BPAY = "bpay"
    PAYID = "payid"
    DIRECT_DEBIT = "direct_debit"
    BANK_TRANSFER = "bank_transfer"

    @classmethod
    def _missing_(cls, value):
        # Clients and the direct debit provider also name the rail after the provider
        if value == "gocardless":
            return cls.DIRECT_DEBIT
        return None


class PayIdType(Enum):
    PHONE = "phone"
    EMAIL = "email"
    ABN = "abn"
    ORG_IDENTIFIER = "org_identifier"


class MandateFrequency(Enum):
    ONE_OFF = "one_off"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


@dataclass(frozen=True)
class BpayDetails:
    biller_code: str
    reference: str
    amount: float
    expiry_date: datetime

    method = PaymentMethodType.BPAY

    def to_wire(self) -> dict:
        return {
            "billerCode": self.biller_code,
            "reference": self.reference,
            "amount": self.amount,
            "expiryDate": self.expiry_date.isoformat(),
        }


@dataclass(frozen=True)
class PayIdDetails:
    pay_id: str
    pay_id_type: PayIdType
    amount: float
    description: str = ""

    method = PaymentMethodType.PAYID

    def to_wire(self) -> dict:
        return {
            "payId": self.pay_id,
            "payIdType": self.pay_id_type.value,
            "amount": self.amount,
            "description": self.description,
        }


@dataclass(frozen=True)
class DirectDebitDetails:
    account_name: str
    bsb: str
    account_number: str
    amount: float
    frequency: MandateFrequency | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    max_payments: int | None = None

    method = PaymentMethodType.DIRECT_DEBIT

    def to_wire(self) -> dict:
        wire = {
            "accountName": self.account_name,
            "bsb": self.bsb,
            "accountNumber": self.account_number,
            "amount": self.amount,
        }
        if self.frequency is not None:
            wire["frequency"] = self.frequency.value
        if self.start_date is not None:
            wire["startDate"] = self.start_date.isoformat()
        if self.end_date is not None:
            wire["endDate"] = self.end_date.isoformat()
        if self.max_payments is not None:
            wire["maxPayments"] = self.max_payments
        return wire


@dataclass(frozen=True)
class BankTransferDetails:
    account_name: str
    bsb: str
    account_number: str
    amount: float
    reference: str

    method = PaymentMethodType.BANK_TRANSFER

    def to_wire(self) -> dict:
        return {
            "accountName": self.account_name,
            "bsb": self.bsb,
            "accountNumber": self.account_number,
            "amount": self.amount,
            "reference": self.reference,
        }


PaymentDetails = BpayDetails | PayIdDetails | DirectDebitDetails | BankTransferDetails

DETAIL_TYPES: dict[PaymentMethodType, type] = {
    PaymentMethodType.BPAY: BpayDetails,
    PaymentMethodType.PAYID: PayIdDetails,
    PaymentMethodType.DIRECT_DEBIT: DirectDebitDetails,
    PaymentMethodType.BANK_TRANSFER: BankTransferDetails,
}

# Wire keys each variant understands. Used to spot payloads shaped for another rail.
WIRE_FIELDS: dict[PaymentMethodType, frozenset[str]] = {
    PaymentMethodType.BPAY: frozenset({"billerCode", "reference", "amount", "expiryDate"}),
    PaymentMethodType.PAYID: frozenset({"payId", "payIdType", "amount", "description"}),
    PaymentMethodType.DIRECT_DEBIT: frozenset(
        {"accountName", "bsb", "accountNumber", "amount", "frequency", "startDate", "endDate", "maxPayments"}
    ),
    PaymentMethodType.BANK_TRANSFER: frozenset({"accountName", "bsb", "accountNumber", "amount", "reference"}),
}

for _table in (DETAIL_TYPES, WIRE_FIELDS):
    _missing = set(PaymentMethodType) - set(_table)
    if _missing:
        raise RuntimeError(f"Payment detail table is missing rails: {sorted(m.value for m in _missing)}")


def _mask(account_number: str) -> str:
    return "*" * max(len(account_number) - 4, 0) + account_number[-4:]


def masked_wire(details: PaymentDetails) -> dict:
    """Wire form safe to return to clients: bank account numbers are masked."""
    match details:
        case BpayDetails() | PayIdDetails():
            return details.to_wire()
        case DirectDebitDetails() | BankTransferDetails():
            return {**details.to_wire(), "accountNumber": _mask(details.account_number)}
        case _:
            assert_never(details)


def summary(details: PaymentDetails) -> str:
    """Short human-readable description used in provider requests and logs."""
    match details:
        case BpayDetails():
            return f"BPAY {details.biller_code}/{details.reference}"
        case PayIdDetails():
            return f"PayID {details.pay_id_type.value}"
        case DirectDebitDetails():
            return f"Direct debit {details.bsb} {_mask(details.account_number)}"
        case BankTransferDetails():
            return f"Bank transfer {details.bsb} {_mask(details.account_number)} ref {details.reference}"
        case _:
            assert_never(details)


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def from_wire(method: PaymentMethodType, data: dict) -> PaymentDetails:
    """Rebuild stored details. The payload was validated when the payment was created."""
    match method:
        case PaymentMethodType.BPAY:
            return BpayDetails(
                biller_code=data["billerCode"],
                reference=data["reference"],
                amount=data["amount"],
                expiry_date=_parse_datetime(data["expiryDate"]),
            )
        case PaymentMethodType.PAYID:
            return PayIdDetails(
                pay_id=data["payId"],
                pay_id_type=PayIdType(data["payIdType"]),
                amount=data["amount"],
                description=data.get("description", ""),
            )
        case PaymentMethodType.DIRECT_DEBIT:
            return DirectDebitDetails(
                account_name=data["accountName"],
                bsb=data["bsb"],
                account_number=data["accountNumber"],
                amount=data["amount"],
                frequency=MandateFrequency(data["frequency"]) if data.get("frequency") else None,
                start_date=_parse_datetime(data.get("startDate")),
                end_date=_parse_datetime(data.get("endDate")),
                max_payments=data.get("maxPayments"),
            )
        case PaymentMethodType.BANK_TRANSFER:
            return BankTransferDetails(
                account_name=data["accountName"],
                bsb=data["bsb"],
                account_number=data["accountNumber"],
                amount=data["amount"],
                reference=data["reference"],
            )
        case _:
            assert_never(method)
