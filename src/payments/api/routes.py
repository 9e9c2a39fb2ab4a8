"""FastAPI routes for the Payments domain — verification and gateway callbacks."""

import jwt
import structlog
from fastapi import APIRouter, Header, HTTPException

from payments.adapter import GatewayAdapter
from payments.api.schemas import (
    ConfigureGatewayRequest,
    GatewayCallbackRequest,
    GatewayConfigResponse,
    GatewayPaymentResponse,
    StatusResponse,
    VerifySignatureRequest,
    VerifySignatureResponse,
)
from payments.gateway import get_callbacks, get_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import GatewayOutcome, OutcomeStatus
from payments.gateway.signature import VERIFY_AUDIENCE, HmacSignatureVerifier
from shared.config import get_settings
from shared.security import verify_internal_token

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


def _signing_secret() -> str:
    settings = get_settings()
    gateway = get_gateway()
    if isinstance(gateway, FakeGateway):
        return gateway.secret
    return settings.gateway_key_secret


@payment_router.post("/verify", response_model=VerifySignatureResponse)
async def verify_signature(
    body: VerifySignatureRequest,
    authorization: str = Header(default=""),
) -> VerifySignatureResponse:
    """Trusted signature check. Callers authenticate with an internal token."""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Missing internal token")
    try:
        verify_internal_token(token, VERIFY_AUDIENCE)
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected internal token", error=str(exc))
        raise HTTPException(status_code=401, detail="Invalid internal token") from exc

    verifier = HmacSignatureVerifier(_signing_secret())
    verified = await verifier.verify(body.gateway_order_id, body.gateway_payment_id, body.signature)
    logger.info(
        "Signature verification requested",
        gateway_order_id=body.gateway_order_id,
        gateway_payment_id=body.gateway_payment_id,
        verified=verified,
    )
    return VerifySignatureResponse(
        verified=verified,
        gateway_order_id=body.gateway_order_id,
        gateway_payment_id=body.gateway_payment_id,
    )


@payment_router.post("/callback", status_code=202, response_model=StatusResponse)
async def gateway_callback(body: GatewayCallbackRequest) -> StatusResponse:
    """Receive a payer outcome from the hosted gateway.

    The outcome is handed to whoever awaits it; a paid outcome is still
    verified before it is trusted.
    """
    outcome = GatewayOutcome(
        status=OutcomeStatus(body.status),
        gateway_order_id=body.gateway_order_id,
        gateway_payment_id=body.gateway_payment_id,
        signature=body.signature,
        failure_reason=body.failure_reason,
    )
    get_callbacks().resolve(outcome)
    logger.info("Gateway callback received", gateway_order_id=body.gateway_order_id, status=body.status)
    return StatusResponse(status="received")


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if get_settings().is_production:
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(**body.model_dump())
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        outcome=gateway.outcome.value,
        failure_reason=gateway.failure_reason,
        transient_failures=gateway.transient_failures,
        decline_orders=gateway.decline_orders,
        tamper_signature=gateway.tamper_signature,
    )


@payment_router.get("/{correlation_id}", response_model=GatewayPaymentResponse)
async def get_gateway_payment(correlation_id: str) -> GatewayPaymentResponse:
    record = GatewayAdapter().find_by_correlation(correlation_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No gateway payment for {correlation_id}")
    return GatewayPaymentResponse(
        gateway_order_id=str(record.gateway_order_id),
        correlation_id=record.correlation_id,
        amount=record.amount,
        currency=record.currency,
        status=record.status,
        gateway_payment_id=record.gateway_payment_id,
        signature_verified=bool(record.signature_verified),
        failure_reason=record.failure_reason,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
