"""Per-rail validation of payment detail payloads.

Validators are pure: they take the raw payload dict (camelCase wire keys or
snake_case) and return a ``ValidationResult``. Bad input is reported as
field errors, never raised. ``validate_details`` dispatches on the rail tag
and flags payloads that carry another rail's fields as a tag mismatch.
"""

import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from payments.payment.details import (
    WIRE_FIELDS,
    BankTransferDetails,
    BpayDetails,
    DirectDebitDetails,
    MandateFrequency,
    PaymentDetails,
    PaymentMethodType,
    PayIdDetails,
    PayIdType,
)

# ASCII digits only, matched against the whole value
BILLER_CODE = re.compile(r"[0-9]{3,10}")
BSB = re.compile(r"[0-9]{3}-[0-9]{3}")
ACCOUNT_NUMBER = re.compile(r"[0-9]{6,10}")

MAX_DESCRIPTION_LENGTH = 280


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class ValidationResult:
    value: PaymentDetails | None = None
    errors: tuple[FieldError, ...] = field(default_factory=tuple)
    tag_mismatch: bool = False

    @property
    def is_valid(self) -> bool:
        return self.value is not None and not self.errors and not self.tag_mismatch


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def normalise_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``payload`` with snake_case keys rewritten to their camelCase wire form."""
    return {_camel(key) if "_" in key else key: value for key, value in payload.items()}


# ---------------------------------------------------------------------------
# Field checks. Each appends to ``errors`` and returns the cleaned value or None.
# ---------------------------------------------------------------------------
def _string(data: dict, key: str, errors: list[FieldError], required: bool = True) -> str | None:
    value = data.get(key)
    if value is None:
        if required:
            errors.append(FieldError(key, "Required"))
        return None
    if not isinstance(value, str):
        errors.append(FieldError(key, "Must be a string"))
        return None
    return value


def _length(value: str | None, key: str, errors: list[FieldError], minimum: int, maximum: int | None = None) -> None:
    if value is None:
        return
    if len(value) < minimum:
        errors.append(FieldError(key, f"Must be at least {minimum} characters"))
    elif maximum is not None and len(value) > maximum:
        errors.append(FieldError(key, f"Must be at most {maximum} characters"))


def _pattern(value: str | None, key: str, errors: list[FieldError], pattern: re.Pattern, message: str) -> None:
    if value is not None and not pattern.fullmatch(value):
        errors.append(FieldError(key, message))


def _amount(data: dict, errors: list[FieldError]) -> float | None:
    value = data.get("amount")
    if value is None:
        errors.append(FieldError("amount", "Required"))
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        errors.append(FieldError("amount", "Must be a number"))
        return None
    if not math.isfinite(value):
        errors.append(FieldError("amount", "Must be a finite number"))
        return None
    if value <= 0:
        errors.append(FieldError("amount", "Must be greater than 0"))
        return None
    return float(value)


def _timestamp(data: dict, key: str, errors: list[FieldError], required: bool = True) -> datetime | None:
    raw = _string(data, key, errors, required=required)
    if raw is None:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        errors.append(FieldError(key, "Must be an ISO-8601 timestamp"))
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _choice(data: dict, key: str, errors: list[FieldError], enum_cls, required: bool = True):
    raw = _string(data, key, errors, required=required)
    if raw is None:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        errors.append(FieldError(key, f"Must be one of: {allowed}"))
        return None


def _bank_account(data: dict, errors: list[FieldError]) -> tuple[str | None, str | None, str | None]:
    account_name = _string(data, "accountName", errors)
    if account_name is not None and len(account_name.strip()) < 2:
        errors.append(FieldError("accountName", "Must be at least 2 characters"))

    bsb = _string(data, "bsb", errors)
    _pattern(bsb, "bsb", errors, BSB, "BSB must be in format XXX-XXX")

    account_number = _string(data, "accountNumber", errors)
    _pattern(account_number, "accountNumber", errors, ACCOUNT_NUMBER, "Account number must be 6-10 digits")

    return account_name, bsb, account_number


def _result(errors: list[FieldError], build: Callable[[], PaymentDetails]) -> ValidationResult:
    if errors:
        return ValidationResult(errors=tuple(errors))
    return ValidationResult(value=build())


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------
def validate_bpay(payload: Mapping[str, Any], now: datetime | None = None) -> ValidationResult:
    data = normalise_keys(payload)
    errors: list[FieldError] = []

    biller_code = _string(data, "billerCode", errors)
    _pattern(biller_code, "billerCode", errors, BILLER_CODE, "Biller code must be 3-10 digits")

    reference = _string(data, "reference", errors)
    _length(reference, "reference", errors, 6, 20)

    amount = _amount(data, errors)

    expiry = _timestamp(data, "expiryDate", errors)
    if expiry is not None and expiry < (now or datetime.now(UTC)):
        errors.append(FieldError("expiryDate", "Expiry must not be in the past"))

    return _result(
        errors,
        lambda: BpayDetails(biller_code=biller_code, reference=reference, amount=amount, expiry_date=expiry),
    )


def validate_payid(payload: Mapping[str, Any]) -> ValidationResult:
    data = normalise_keys(payload)
    errors: list[FieldError] = []

    pay_id = _string(data, "payId", errors)
    if pay_id is not None and len(pay_id.strip()) < 5:
        errors.append(FieldError("payId", "Must be at least 5 characters"))

    pay_id_type = _choice(data, "payIdType", errors, PayIdType)
    amount = _amount(data, errors)

    description = _string(data, "description", errors, required=False)
    _length(description, "description", errors, 0, MAX_DESCRIPTION_LENGTH)

    return _result(
        errors,
        lambda: PayIdDetails(
            pay_id=pay_id.strip(),
            pay_id_type=pay_id_type,
            amount=amount,
            description=description or "",
        ),
    )


def validate_direct_debit(payload: Mapping[str, Any]) -> ValidationResult:
    data = normalise_keys(payload)
    errors: list[FieldError] = []

    account_name, bsb, account_number = _bank_account(data, errors)
    amount = _amount(data, errors)

    frequency = _choice(data, "frequency", errors, MandateFrequency, required=False)
    start_date = _timestamp(data, "startDate", errors, required=False)
    end_date = _timestamp(data, "endDate", errors, required=False)

    max_payments = data.get("maxPayments")
    if max_payments is not None:
        if isinstance(max_payments, bool) or not isinstance(max_payments, int) or max_payments < 1:
            errors.append(FieldError("maxPayments", "Must be a positive integer"))
            max_payments = None

    if end_date is not None:
        if data.get("startDate") is None:
            errors.append(FieldError("endDate", "End date requires a start date"))
        elif start_date is not None and end_date <= start_date:
            errors.append(FieldError("endDate", "End date must be after start date"))

    if frequency is MandateFrequency.ONE_OFF and max_payments is not None and max_payments > 1:
        errors.append(FieldError("maxPayments", "A one-off mandate cannot collect more than one payment"))

    return _result(
        errors,
        lambda: DirectDebitDetails(
            account_name=account_name.strip(),
            bsb=bsb,
            account_number=account_number,
            amount=amount,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            max_payments=max_payments,
        ),
    )


def validate_bank_transfer(payload: Mapping[str, Any]) -> ValidationResult:
    data = normalise_keys(payload)
    errors: list[FieldError] = []

    account_name, bsb, account_number = _bank_account(data, errors)
    amount = _amount(data, errors)

    reference = _string(data, "reference", errors)
    _length(reference, "reference", errors, 3, 18)

    return _result(
        errors,
        lambda: BankTransferDetails(
            account_name=account_name.strip(),
            bsb=bsb,
            account_number=account_number,
            amount=amount,
            reference=reference,
        ),
    )


VALIDATORS: dict[PaymentMethodType, Callable[[Mapping[str, Any]], ValidationResult]] = {
    PaymentMethodType.BPAY: validate_bpay,
    PaymentMethodType.PAYID: validate_payid,
    PaymentMethodType.DIRECT_DEBIT: validate_direct_debit,
    PaymentMethodType.BANK_TRANSFER: validate_bank_transfer,
}

if set(VALIDATORS) != set(PaymentMethodType):
    raise RuntimeError("Every payment method needs a validator")


def foreign_fields(method: PaymentMethodType, payload: Mapping[str, Any]) -> set[str]:
    """Keys that the declared rail doesn't accept but another rail does."""
    keys = set(normalise_keys(payload))
    other_rails = set().union(*(fields for rail, fields in WIRE_FIELDS.items() if rail is not method))
    return (keys - WIRE_FIELDS[method]) & other_rails


def validate_details(method: PaymentMethodType | str, payload: Any) -> ValidationResult:
    """Validate ``payload`` against the rail named by ``method``."""
    try:
        method = PaymentMethodType(method)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethodType)
        return ValidationResult(errors=(FieldError("paymentMethod", f"Must be one of: {allowed}"),))

    if not isinstance(payload, Mapping):
        return ValidationResult(errors=(FieldError("paymentDetails", "Must be an object"),))

    mismatched = foreign_fields(method, payload)
    if mismatched:
        return ValidationResult(
            errors=tuple(
                FieldError(key, f"Not a {method.value} field") for key in sorted(mismatched)
            ),
            tag_mismatch=True,
        )

    return VALIDATORS[method](payload)
