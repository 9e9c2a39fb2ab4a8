"""Pydantic request/response schemas for the Payments API.

These are external contracts, separate from internal Protean commands.
Signatures are accepted on the way in and never echoed back.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class VerifySignatureRequest(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    signature: str


class GatewayCallbackRequest(BaseModel):
    gateway_order_id: str
    status: str = Field(pattern="^(paid|failed|cancelled)$")
    gateway_payment_id: str | None = None
    signature: str | None = None
    failure_reason: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "gateway_order_id": "order_Nx1",
                    "status": "paid",
                    "gateway_payment_id": "pay_Nx1",
                    "signature": "5f2b...",
                }
            ]
        }
    }


class ConfigureGatewayRequest(BaseModel):
    outcome: str = Field(default="paid", pattern="^(paid|failed|cancelled)$")
    failure_reason: str = "Payment declined by issuer"
    transient_failures: int = Field(default=0, ge=0)
    decline_orders: bool = False
    tamper_signature: bool = False


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class VerifySignatureResponse(BaseModel):
    verified: bool
    gateway_order_id: str
    gateway_payment_id: str


class StatusResponse(BaseModel):
    status: str


class GatewayPaymentResponse(BaseModel):
    gateway_order_id: str
    correlation_id: str
    amount: int
    currency: str
    status: str
    gateway_payment_id: str | None = None
    signature_verified: bool
    failure_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GatewayConfigResponse(BaseModel):
    gateway: str
    outcome: str
    failure_reason: str
    transient_failures: int
    decline_orders: bool
    tamper_signature: bool
