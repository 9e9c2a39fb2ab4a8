"""FastAPI routes for the Checkout domain.

Callers identify the buyer with a bearer token minted for the ``checkout``
audience, whose ``sub`` claim is the user id. Requests without a token act
as a guest and cannot spend store credit.
"""

import jwt
import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Response

from checkout.api.schemas import (
    CheckoutAttemptResponse,
    CheckoutRequest,
    CheckoutResponse,
    ExpirePendingRequest,
    ExpirePendingResponse,
    GatewaySessionSchema,
    OrderResultSchema,
    PaymentOutcomeRequest,
)
from checkout.cart import Cart, CartLine, Customer, PaymentSelection
from checkout.orchestrator import OrderResult, PaymentOrchestrator, PendingPayment
from ordering.order.order import PaymentMethod
from ordering.writer.policy import WriteContext
from ordering.writer.writer import OrderWriter
from payments.adapter import GatewayAdapter
from payments.gateway.port import GatewayOutcome, OutcomeStatus
from shared.config import get_settings
from shared.security import verify_internal_token
from storecredit.ledger import CreditLedger

logger = structlog.get_logger(__name__)

CHECKOUT_AUDIENCE = "checkout"

_orchestrator: PaymentOrchestrator | None = None


def get_orchestrator() -> PaymentOrchestrator:
    """FastAPI dependency. Override with ``app.dependency_overrides`` in tests."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = PaymentOrchestrator(CreditLedger(), GatewayAdapter(), OrderWriter())
    return _orchestrator


def get_write_context(authorization: str = Header(default="")) -> WriteContext:
    """Resolve the caller from the bearer token. No token means a guest."""
    if not authorization:
        return WriteContext.anon()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Malformed authorization header")
    try:
        claims = verify_internal_token(token, CHECKOUT_AUDIENCE)
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected checkout token", error=str(exc))
        raise HTTPException(status_code=401, detail="Invalid token") from exc
    if not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Token has no subject")
    return WriteContext.authenticated(str(claims["sub"]))


def _order_schema(result: OrderResult) -> OrderResultSchema:
    return OrderResultSchema(
        order_id=result.order_id,
        temp_order_id=result.temp_order_id,
        payment_method=result.payment_method,
        credit_applied=result.credit_applied,
        gateway_amount=result.gateway_amount,
        total_amount=result.total_amount,
        status=result.status,
    )


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/maintenance/expire-pending", response_model=ExpirePendingResponse)
async def expire_pending(
    body: ExpirePendingRequest | None = None,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ExpirePendingResponse:
    """Abandon gateway payments that never reported back, returning their credit.

    Designed to be called periodically by an external scheduler.
    """
    body = body or ExpirePendingRequest()
    expired = await orchestrator.expire_pending(idle_seconds=body.idle_seconds, as_of=body.as_of)
    return ExpirePendingResponse(expired_count=expired)


@checkout_router.post("", status_code=201, response_model=CheckoutResponse)
async def start_checkout(
    body: CheckoutRequest,
    response: Response,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
    context: WriteContext = Depends(get_write_context),
) -> CheckoutResponse:
    """Start (or replay) a checkout.

    Returns 201 with the order when no gateway step is needed, or 202 with
    the gateway session the payer must complete.
    """
    customer = Customer(**body.customer.model_dump()) if body.customer else None
    wants_credit = body.store_credit_requested or body.payment.method == PaymentMethod.STORE_CREDIT.value
    if wants_credit and customer is not None and customer.user_id and customer.user_id != context.principal_id:
        logger.warning(
            "Store credit requested for another user",
            user_id=customer.user_id,
            principal_id=context.principal_id,
            temp_order_id=body.temp_order_id,
        )
        raise HTTPException(status_code=403, detail="Store credit can only be spent by its owner")

    cart = Cart(lines=[CartLine(**line.model_dump()) for line in body.lines], currency=body.currency)
    result = await orchestrator.begin(
        cart,
        PaymentSelection(**body.payment.model_dump()),
        store_credit_requested=body.store_credit_requested,
        customer=customer,
        temp_order_id=body.temp_order_id,
        context=context,
    )
    if isinstance(result, PendingPayment):
        response.status_code = 202
        return CheckoutResponse(
            status="pending",
            temp_order_id=result.temp_order_id,
            payment=GatewaySessionSchema(
                gateway_order_id=result.gateway_order_id,
                amount=result.amount,
                currency=result.currency,
                key_id=get_settings().gateway_key_id or None,
            ),
            credit_applied=result.credit_applied,
            total_amount=result.total_amount,
        )
    return CheckoutResponse(
        status="confirmed",
        temp_order_id=result.temp_order_id,
        order=_order_schema(result),
        credit_applied=result.credit_applied,
        total_amount=result.total_amount,
    )


@checkout_router.post("/{temp_order_id}/payment", response_model=OrderResultSchema)
async def settle_payment(
    temp_order_id: str,
    body: PaymentOutcomeRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
    context: WriteContext = Depends(get_write_context),
) -> OrderResultSchema:
    """Hand the payer's gateway outcome to a pending checkout.

    A failed or cancelled outcome is only acted on once the gateway confirms
    it holds no captured payment for the order.
    """
    outcome = GatewayOutcome(
        status=OutcomeStatus(body.status),
        gateway_order_id=body.gateway_order_id,
        gateway_payment_id=body.gateway_payment_id,
        signature=body.signature,
        failure_reason=body.failure_reason,
    )
    result = await orchestrator.settle(temp_order_id, outcome, context)
    return _order_schema(result)


@checkout_router.post("/{temp_order_id}/abandon", response_model=OrderResultSchema)
async def abandon_checkout(
    temp_order_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
    context: WriteContext = Depends(get_write_context),
) -> OrderResultSchema:
    """The payer walked away. Returns any store credit unless the gateway captured payment."""
    result = await orchestrator.abandon(temp_order_id, context=context)
    return _order_schema(result)


@checkout_router.get("/{temp_order_id}", response_model=CheckoutAttemptResponse)
async def get_checkout(
    temp_order_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> CheckoutAttemptResponse:
    attempt = orchestrator.get_attempt(temp_order_id)
    return CheckoutAttemptResponse(
        temp_order_id=str(attempt.temp_order_id),
        state=attempt.state,
        total_amount=attempt.total_amount,
        currency=attempt.currency,
        requested_method=attempt.requested_method,
        resolved_method=attempt.resolved_method,
        credit_applied=attempt.credit_applied or 0,
        gateway_amount=attempt.gateway_amount or 0,
        order_id=str(attempt.order_id) if attempt.order_id else None,
        failure_code=attempt.failure_code,
        failure_reason=attempt.failure_reason,
        credit_compensated=bool(attempt.credit_compensated),
    )
