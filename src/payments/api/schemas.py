"""Pydantic request/response schemas for the Payments API.

These are external contracts (anti-corruption layer), separate from the
internal Protean commands. Wire bodies are camelCase; Python attributes stay
snake_case through an alias generator.

Field constraints are deliberately loose beyond rejecting NaN and infinite
numbers: the currency, amount and payment-detail rules are enforced in the
domain so that their order of evaluation, and the error shapes, stay the
same for every caller.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Payment Request Schemas
# ---------------------------------------------------------------------------
class CreatePaymentRequest(CamelModel):
    order_id: str
    amount: float = Field(allow_inf_nan=False)
    currency: str
    payment_method: str
    payment_details: dict
    metadata: dict | None = None
    receipt_email: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "orderId": "3f1c2d7e-0000-4000-8000-000000000001",
                    "amount": 550.0,
                    "currency": "AUD",
                    "paymentMethod": "bpay",
                    "paymentDetails": {
                        "billerCode": "123456",
                        "reference": "EH2401150001",
                        "amount": 550.0,
                        "expiryDate": "2030-01-01T00:00:00Z",
                    },
                    "receiptEmail": "owner@example.com.au",
                }
            ]
        },
    )


class UpdatePaymentRequest(CamelModel):
    status: str | None = None
    metadata: dict | None = None


class RefundPaymentRequest(CamelModel):
    amount: float | None = Field(default=None, allow_inf_nan=False)
    reason: str = Field(min_length=1, max_length=500)


class ConfigureGatewayRequest(CamelModel):
    should_succeed: bool = True
    failure_reason: str = "Payment rejected by provider"
    timeout: bool = False
    provider_status: str | None = None


# ---------------------------------------------------------------------------
# Payment Response Schemas
# ---------------------------------------------------------------------------
class PaymentResponse(CamelModel):
    id: str
    user_id: str
    order_id: str
    amount: float
    currency: str
    status: str
    payment_method: str
    payment_details: dict
    provider: str | None = None
    provider_payment_id: str | None = None
    provider_reference: str | None = None
    metadata: dict = Field(default_factory=dict)
    receipt_email: str | None = None
    receipt_url: str | None = None
    cancellation_reason: str | None = None
    refund_reason: str | None = None
    refund_amount: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None
    # True when the provider could not be reached and the stored status is shown
    status_stale: bool = False


class CreatePaymentResponse(CamelModel):
    payment: PaymentResponse
    instructions: dict = Field(default_factory=dict)
    redirect_url: str | None = None
    expires_at: datetime | None = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class PaymentListResponse(CamelModel):
    payments: list[PaymentResponse]
    pagination: Pagination


class UpdatePaymentResponse(CamelModel):
    payment: PaymentResponse
    status_changed: bool


class GatewayConfigResponse(CamelModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    timeout: bool
    provider_status: str


# ---------------------------------------------------------------------------
# Order Schemas
# ---------------------------------------------------------------------------
class OrderItemSchema(CamelModel):
    product_id: str
    product_type: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0, allow_inf_nan=False)


class AddressSchema(CamelModel):
    name: str
    line1: str
    line2: str | None = None
    city: str
    state: str
    postal_code: str
    country: str = "Australia"


class PlaceOrderRequest(CamelModel):
    items: list[OrderItemSchema]
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    discount: float = Field(default=0.0, allow_inf_nan=False)
    notes: str | None = None


class OrderItemResponse(OrderItemSchema):
    total_price: float


class OrderResponse(CamelModel):
    id: str
    user_id: str
    order_number: str
    items: list[OrderItemResponse]
    subtotal: float
    tax: float
    discount: float
    total: float
    currency: str
    status: str
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    payment_id: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
