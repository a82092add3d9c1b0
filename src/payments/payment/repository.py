"""Payment queries used by creation, webhook matching and listing."""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from payments.errors import NotFoundError
from payments.payment.details import PaymentMethodType
from payments.payment.payment import OPEN_STATUSES, Payment


# Protean querysets default to 100 rows; scans here need every match
_SCAN_LIMIT = 10_000


def _query(**filters) -> list[Payment]:
    query = current_domain.repository_for(Payment)._dao.query.limit(_SCAN_LIMIT)
    if filters:
        query = query.filter(**filters)
    return query.all().items


def _method_value(name: str) -> str:
    try:
        return PaymentMethodType(name).value
    except ValueError:
        return name


def _as_utc(moment: datetime) -> datetime:
    # Naive bounds from query strings are read as UTC
    return moment.replace(tzinfo=UTC) if moment.tzinfo is None else moment


def find_open_for_order(order_id: str) -> Payment | None:
    """The payment that currently blocks a new one for ``order_id``, if any."""
    open_values = {status.value for status in OPEN_STATUSES}
    for payment in _query(order_id=str(order_id)):
        if payment.status in open_values:
            return payment
    return None


def find_by_provider_payment_id(provider_payment_id: str, payment_method: str | None = None) -> list[Payment]:
    filters = {"provider_payment_id": provider_payment_id}
    if payment_method:
        filters["payment_method"] = _method_value(payment_method)
    return _query(**filters)


def find_by_reference(provider_reference: str) -> list[Payment]:
    return _query(provider_reference=provider_reference)


@dataclass(frozen=True)
class PaymentPage:
    items: list[Payment]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


def list_payments(
    user_id: str | None = None,
    order_id: str | None = None,
    status: str | None = None,
    payment_method: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 10,
) -> PaymentPage:
    filters = {}
    if user_id:
        filters["user_id"] = str(user_id)
    if order_id:
        filters["order_id"] = str(order_id)
    if status:
        filters["status"] = status
    if payment_method:
        filters["payment_method"] = _method_value(payment_method)

    matched = _query(**filters)
    if start_date:
        start = _as_utc(start_date)
        matched = [p for p in matched if p.created_at and _as_utc(p.created_at) >= start]
    if end_date:
        end = _as_utc(end_date)
        matched = [p for p in matched if p.created_at and _as_utc(p.created_at) <= end]

    matched.sort(key=lambda p: p.created_at, reverse=True)
    offset = (page - 1) * limit
    return PaymentPage(items=matched[offset : offset + limit], total=len(matched), page=page, limit=limit)


def get_payment(payment_id: str) -> Payment:
    try:
        return current_domain.repository_for(Payment).get(str(payment_id))
    except ObjectNotFoundError:
        raise NotFoundError("Payment not found") from None
