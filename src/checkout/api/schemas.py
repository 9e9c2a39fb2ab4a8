"""Pydantic request/response schemas for the Checkout API.

Amounts are integer minor units. Responses never carry ledger balances,
gateway keys or signatures.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CartLineSchema(BaseModel):
    product_id: str
    title: str
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    product_type: str
    image: str | None = None
    poster_size: str | None = None
    options: dict | None = None


class CustomerSchema(BaseModel):
    user_id: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class PaymentSelectionSchema(BaseModel):
    method: str = Field(pattern="^(gateway|cod|store_credit)$")
    shipping_address: dict | None = None
    billing_address: dict | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class CheckoutRequest(BaseModel):
    lines: list[CartLineSchema]
    currency: str = "INR"
    payment: PaymentSelectionSchema
    store_credit_requested: bool = False
    customer: CustomerSchema | None = None
    temp_order_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "lines": [
                        {
                            "product_id": "prod-001",
                            "title": "Monsoon Poster",
                            "quantity": 1,
                            "unit_price": 100000,
                            "product_type": "poster",
                            "poster_size": "A3",
                        }
                    ],
                    "currency": "INR",
                    "payment": {"method": "gateway", "shipping_address": {"city": "Pune"}},
                    "store_credit_requested": True,
                    "customer": {"user_id": "user-001", "name": "Asha", "email": "asha@example.com"},
                }
            ]
        }
    }


class PaymentOutcomeRequest(BaseModel):
    gateway_order_id: str
    status: str = Field(pattern="^(paid|failed|cancelled)$")
    gateway_payment_id: str | None = None
    signature: str | None = None
    failure_reason: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderResultSchema(BaseModel):
    order_id: str
    temp_order_id: str
    payment_method: str
    credit_applied: int
    gateway_amount: int
    total_amount: int
    status: str


class GatewaySessionSchema(BaseModel):
    gateway_order_id: str
    amount: int
    currency: str
    key_id: str | None = None


class CheckoutResponse(BaseModel):
    status: str  # confirmed | pending
    temp_order_id: str
    order: OrderResultSchema | None = None
    payment: GatewaySessionSchema | None = None
    credit_applied: int = 0
    total_amount: int


class CheckoutAttemptResponse(BaseModel):
    temp_order_id: str
    state: str
    total_amount: int
    currency: str
    requested_method: str
    resolved_method: str
    credit_applied: int
    gateway_amount: int
    order_id: str | None = None
    failure_code: str | None = None
    failure_reason: str | None = None
    credit_compensated: bool


class ExpirePendingRequest(BaseModel):
    idle_seconds: float | None = Field(default=None, gt=0)
    as_of: datetime | None = None


class ExpirePendingResponse(BaseModel):
    status: str = "ok"
    expired_count: int
