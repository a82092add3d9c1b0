"""FastAPI routes for the Payments domain: payments, webhooks and orders."""

import json
import os
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from payments.api.auth import Principal, current_principal
from payments.api.rate_limit import limit_order_placement
from payments.api.schemas import (
    AddressSchema,
    ConfigureGatewayRequest,
    CreatePaymentRequest,
    CreatePaymentResponse,
    GatewayConfigResponse,
    OrderItemResponse,
    OrderResponse,
    Pagination,
    PaymentListResponse,
    PaymentResponse,
    PlaceOrderRequest,
    RefundPaymentRequest,
    UpdatePaymentRequest,
    UpdatePaymentResponse,
)
from payments.errors import GatewayError, PaymentValidationError
from payments.gateway import get_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.order.order import Order
from payments.order.placement import PlaceOrder, get_order
from payments.payment.cancellation import cancel_payment
from payments.payment.creation import CreatePayment, submit_payment
from payments.payment.details import PaymentMethodType
from payments.payment.override import override_payment
from payments.payment.payment import Payment, PaymentStatus
from payments.payment.refresh import refresh_status
from payments.payment.refund import refund_payment
from payments.payment.repository import get_payment, list_payments
from payments.security.vault import get_vault
from payments.webhook.reconciler import WebhookReconciler


# ---------------------------------------------------------------------------
# Response mapping
# ---------------------------------------------------------------------------
def payment_response(payment: Payment, status_stale: bool = False) -> PaymentResponse:
    return PaymentResponse(
        id=str(payment.id),
        user_id=str(payment.user_id),
        order_id=str(payment.order_id),
        amount=payment.amount,
        currency=payment.currency,
        status=payment.status,
        payment_method=payment.payment_method,
        payment_details=payment.masked_details(get_vault()),
        provider=payment.provider,
        provider_payment_id=payment.provider_payment_id,
        provider_reference=payment.provider_reference,
        metadata=payment.get_metadata(),
        receipt_email=payment.receipt_email,
        receipt_url=payment.receipt_url,
        cancellation_reason=payment.cancellation_reason,
        refund_reason=payment.refund_reason,
        refund_amount=payment.refund_amount,
        created_at=payment.created_at,
        updated_at=payment.updated_at,
        completed_at=payment.completed_at,
        cancelled_at=payment.cancelled_at,
        refunded_at=payment.refunded_at,
        status_stale=status_stale,
    )


def _address(address) -> AddressSchema | None:
    if address is None:
        return None
    return AddressSchema(
        name=address.name,
        line1=address.line1,
        line2=address.line2,
        city=address.city,
        state=address.state,
        postal_code=address.postal_code,
        country=address.country,
    )


def order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=str(order.id),
        user_id=str(order.user_id),
        order_number=order.order_number,
        items=[
            OrderItemResponse(
                product_id=str(item.product_id),
                product_type=item.product_type,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in order.items
        ],
        subtotal=order.subtotal,
        tax=order.tax,
        discount=order.discount,
        total=order.total,
        currency=order.currency,
        status=order.status,
        shipping_address=_address(order.shipping_address),
        billing_address=_address(order.billing_address),
        payment_id=str(order.payment_id) if order.payment_id else None,
        notes=order.notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
        paid_at=order.paid_at,
        cancelled_at=order.cancelled_at,
    )


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("", status_code=201, response_model=CreatePaymentResponse)
def create_payment(
    body: CreatePaymentRequest,
    principal: Principal = Depends(current_principal),
) -> CreatePaymentResponse:
    """Create a payment for one of the caller's orders."""
    command = CreatePayment(
        user_id=principal.user_id,
        order_id=body.order_id,
        amount=body.amount,
        currency=body.currency,
        payment_method=body.payment_method,
        payment_details=json.dumps(body.payment_details),
        client_metadata=json.dumps(body.metadata) if body.metadata else None,
        receipt_email=body.receipt_email,
    )
    created = submit_payment(command)
    return CreatePaymentResponse(
        payment=payment_response(get_payment(created.payment_id)),
        instructions=created.instructions,
        redirect_url=created.redirect_url,
        expires_at=created.expires_at,
    )


@payment_router.get("", response_model=PaymentListResponse)
def get_payments(
    principal: Principal = Depends(current_principal),
    user_id: str | None = Query(default=None, alias="userId"),
    order_id: str | None = Query(default=None, alias="orderId"),
    status: str | None = Query(default=None),
    payment_method: str | None = Query(default=None, alias="paymentMethod"),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> PaymentListResponse:
    """List payments. Customers only ever see their own; admins may filter by user."""
    owner = (user_id if principal.is_admin else principal.user_id) or None
    result = list_payments(
        user_id=owner,
        order_id=order_id,
        status=status,
        payment_method=payment_method,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return PaymentListResponse(
        payments=[payment_response(payment) for payment in result.items],
        pagination=Pagination(page=result.page, limit=result.limit, total=result.total, pages=result.pages),
    )


@payment_router.post("/webhook")
async def receive_webhook(request: Request) -> JSONResponse:
    """Provider callback. Authenticated by signature only, never by user session.

    The raw body is read on the event loop; reconciliation may call the
    provider and the database, so it runs in the threadpool like the other
    routes.
    """
    raw_body = await request.body()
    result = await run_in_threadpool(WebhookReconciler().handle, raw_body, request.headers)
    return JSONResponse(status_code=result.status_code, content=result.body)


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    This endpoint is only available when PROTEAN_ENV is not 'production'.
    It lets manual API testing make the fake provider fail, time out or
    report a specific status on the next status query.
    """
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateways = map(get_gateway, PaymentMethodType)
    fakes = {id(gateway): gateway for gateway in gateways if isinstance(gateway, FakeGateway)}
    if not fakes:
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    for gateway in fakes.values():
        gateway.configure(
            should_succeed=body.should_succeed,
            failure_reason=body.failure_reason,
            timeout=body.timeout,
            provider_status=body.provider_status,
        )
    gateway = next(iter(fakes.values()))
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        timeout=gateway.timeout,
        provider_status=gateway.provider_status,
    )


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment_by_id(
    payment_id: str,
    principal: Principal = Depends(current_principal),
) -> PaymentResponse:
    """Fetch a payment, refreshing its status from the provider first."""
    payment = get_payment(payment_id)
    principal.require_owner_or_admin(payment.user_id)

    try:
        payment = refresh_status(payment)
    except GatewayError:
        # Already logged as gateway_failure; serve what is stored
        return payment_response(get_payment(payment_id), status_stale=True)
    return payment_response(payment)


@payment_router.put("/{payment_id}", response_model=UpdatePaymentResponse)
def update_payment(
    payment_id: str,
    body: UpdatePaymentRequest,
    principal: Principal = Depends(current_principal),
) -> UpdatePaymentResponse:
    """Admin override of status and/or metadata."""
    principal.require_admin()
    payment = get_payment(payment_id)

    status = None
    if body.status is not None:
        try:
            status = PaymentStatus(body.status)
        except ValueError:
            raise PaymentValidationError(
                "Invalid payment status",
                errors=[{"field": "status", "message": f"Unknown status {body.status!r}"}],
            ) from None

    outcome = override_payment(payment, actor=principal.user_id, status=status, metadata=body.metadata)
    return UpdatePaymentResponse(payment=payment_response(outcome.payment), status_changed=outcome.changed)


@payment_router.delete("/{payment_id}", response_model=PaymentResponse)
def delete_payment(
    payment_id: str,
    reason: str | None = Query(default=None, max_length=500),
    principal: Principal = Depends(current_principal),
) -> PaymentResponse:
    """Cancel a payment that has not settled yet."""
    payment = get_payment(payment_id)
    principal.require_owner_or_admin(payment.user_id)
    return payment_response(cancel_payment(payment, actor=principal.user_id, reason=reason))


@payment_router.post("/{payment_id}/refund", response_model=PaymentResponse)
def refund(
    payment_id: str,
    body: RefundPaymentRequest,
    principal: Principal = Depends(current_principal),
) -> PaymentResponse:
    """Refund a completed payment (admin only)."""
    principal.require_admin()
    payment = get_payment(payment_id)
    return payment_response(refund_payment(payment, actor=principal.user_id, reason=body.reason, amount=body.amount))


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse, dependencies=[Depends(limit_order_placement)])
def place_order(
    body: PlaceOrderRequest,
    principal: Principal = Depends(current_principal),
) -> OrderResponse:
    """Price a cart and record it as a draft order."""
    command = PlaceOrder(
        user_id=principal.user_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        shipping_address=json.dumps(body.shipping_address.model_dump()) if body.shipping_address else None,
        billing_address=json.dumps(body.billing_address.model_dump()) if body.billing_address else None,
        discount=body.discount,
        notes=body.notes,
    )
    order_id = current_domain.process(command, asynchronous=False)
    return order_response(get_order(order_id))


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order_by_id(
    order_id: str,
    principal: Principal = Depends(current_principal),
) -> OrderResponse:
    order = get_order(order_id)
    principal.require_owner_or_admin(order.user_id)
    return order_response(order)
