"""PaymentOrchestrator — drives a checkout attempt to an order or a typed failure.

The attempt is keyed by its ``temp_order_id`` and persisted as a
CheckoutAttempt after every step, so a replay resumes where the previous
call stopped:

    begin   validate → allocate credit → debit credit → write order
                                                      → or register with gateway (pending)
    settle  gateway outcome → verify signature → write order
    abandon no outcome and nothing captured → fail, return credit

Any store credit debited for an attempt that does not end in an order is
returned with a compensating refund. If that refund fails the attempt ends
in ``ReconciliationError``.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from protean.exceptions import ObjectNotFoundError

from checkout.allocation import allocate
from checkout.attempt.attempt import AttemptState, CheckoutAttempt
from checkout.attempt.tracking import (
    AwaitGatewayPayment,
    BeginPaymentVerification,
    ConfirmCheckout,
    FailCheckout,
    RecordCreditCompensation,
    ReserveCredit,
    StartCheckout,
)
from checkout.cart import Cart, Customer, PaymentSelection, new_temp_order_id, validate_checkout
from checkout.domain import checkout
from ordering.order.order import PaymentMethod
from ordering.writer.policy import WriteContext
from ordering.writer.writer import OrderDraft, OrderWriter
from payments.adapter import GatewayAdapter
from payments.gateway.port import GatewayOutcome
from shared.config import get_settings
from shared.errors import (
    AuthorizationDeniedError,
    CheckoutError,
    CodNotAllowedError,
    EmptyCartError,
    FallbackUnavailableError,
    GatewayUnavailableError,
    IncompleteOrderError,
    InsufficientCreditError,
    OrderValidationError,
    OrderWriteError,
    PaymentCancelledError,
    PaymentFailedError,
    PaymentVerificationError,
    ReconciliationError,
)
from storecredit.errors import InsufficientFundsError
from storecredit.ledger import CreditLedger

logger = structlog.get_logger(__name__)

COD_PENDING_PAYMENT_ID = "COD-PENDING"

_FAILURES = {
    cls.code: cls
    for cls in (
        EmptyCartError,
        CodNotAllowedError,
        InsufficientCreditError,
        PaymentFailedError,
        PaymentCancelledError,
        PaymentVerificationError,
        GatewayUnavailableError,
        OrderWriteError,
        AuthorizationDeniedError,
        FallbackUnavailableError,
        OrderValidationError,
        ReconciliationError,
    )
}


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    temp_order_id: str
    payment_method: str
    credit_applied: int
    gateway_amount: int
    total_amount: int
    status: str


@dataclass(frozen=True)
class PendingPayment:
    """The payer must now complete payment on the hosted gateway."""

    temp_order_id: str
    gateway_order_id: str
    amount: int
    currency: str
    credit_applied: int
    total_amount: int


class PaymentOrchestrator:
    def __init__(self, ledger: CreditLedger, gateway: GatewayAdapter, orders: OrderWriter, domain=checkout) -> None:
        self.ledger = ledger
        self.gateway = gateway
        self.orders = orders
        self.domain = domain
        self._locks: dict[str, list] = {}  # temp_order_id -> [lock, holders]

    # -------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------
    async def complete_checkout(
        self,
        cart: Cart,
        selection: PaymentSelection,
        store_credit_requested: bool = False,
        customer: Customer | None = None,
        temp_order_id: str | None = None,
        context: WriteContext | None = None,
    ) -> OrderResult:
        """Run a whole checkout, awaiting the gateway outcome when there is one."""
        result = await self.begin(cart, selection, store_credit_requested, customer, temp_order_id, context)
        if isinstance(result, OrderResult):
            return result
        try:
            outcome = await self.gateway.await_outcome(result.gateway_order_id)
        except GatewayUnavailableError as exc:
            return await self.abandon(result.temp_order_id, exc, context)
        return await self.settle(result.temp_order_id, outcome, context)

    async def begin(
        self,
        cart: Cart,
        selection: PaymentSelection,
        store_credit_requested: bool = False,
        customer: Customer | None = None,
        temp_order_id: str | None = None,
        context: WriteContext | None = None,
    ) -> "OrderResult | PendingPayment":
        temp_order_id = temp_order_id or new_temp_order_id()
        customer = customer or Customer()

        async with self._lock_for(temp_order_id):
            attempt = self.find_attempt(temp_order_id)
            if attempt is None:
                attempt = self._start(cart, selection, store_credit_requested, customer, temp_order_id)
            else:
                logger.info("Resuming checkout attempt", temp_order_id=temp_order_id, state=attempt.state)
            return await self._advance(attempt, context)

    async def settle(
        self,
        temp_order_id: str,
        outcome: GatewayOutcome,
        context: WriteContext | None = None,
    ) -> OrderResult:
        """Apply the payer's gateway outcome to a pending attempt."""
        async with self._lock_for(temp_order_id):
            attempt = self.get_attempt(temp_order_id)
            state = AttemptState(attempt.state)
            if state == AttemptState.CONFIRMED:
                return self._result(attempt)
            if state == AttemptState.FAILED:
                raise self._failure(attempt)
            if state not in (AttemptState.GATEWAY_PENDING, AttemptState.VERIFYING):
                raise PaymentVerificationError(
                    "This checkout is not awaiting a gateway payment",
                    attempted_amount=attempt.total_amount,
                    temp_order_id=temp_order_id,
                )
            if outcome.gateway_order_id != attempt.gateway_order_id:
                logger.warning(
                    "Gateway outcome for a different order",
                    temp_order_id=temp_order_id,
                    expected=attempt.gateway_order_id,
                    received=outcome.gateway_order_id,
                )
                raise PaymentVerificationError(
                    "The payment does not belong to this checkout",
                    attempted_amount=attempt.total_amount,
                    temp_order_id=temp_order_id,
                )

            if not outcome.is_paid:
                if await self._captured(attempt):
                    raise PaymentVerificationError(
                        "The gateway reports this payment as captured",
                        attempted_amount=attempt.total_amount,
                        temp_order_id=temp_order_id,
                    )
                reason = outcome.failure_reason or "The payment did not go through"
                self.gateway.mark_failed(attempt.gateway_order_id, reason)
                if outcome.is_cancelled:
                    raise self._fail(attempt, PaymentCancelledError("The payment was cancelled"))
                raise self._fail(attempt, PaymentFailedError(reason))

            if not outcome.gateway_payment_id:
                self.gateway.mark_failed(attempt.gateway_order_id, "Paid outcome without a payment id")
                raise self._fail(attempt, PaymentVerificationError("We could not verify your payment"))
            if state == AttemptState.GATEWAY_PENDING:
                self._apply(
                    BeginPaymentVerification(
                        temp_order_id=temp_order_id,
                        gateway_payment_id=outcome.gateway_payment_id,
                    )
                )
            verified = await self.gateway.verify_signature(
                attempt.gateway_order_id,
                outcome.gateway_payment_id,
                outcome.signature or "",
            )
            attempt = self.get_attempt(temp_order_id)
            if not verified:
                logger.error(
                    "Payment signature rejected",
                    temp_order_id=temp_order_id,
                    gateway_order_id=attempt.gateway_order_id,
                    gateway_payment_id=outcome.gateway_payment_id,
                    credit_applied=attempt.credit_applied,
                )
                raise self._fail(attempt, PaymentVerificationError("We could not verify your payment"))

            return self._write_and_confirm(attempt, outcome.gateway_payment_id, context, gateway_paid=True)

    async def abandon(
        self,
        temp_order_id: str,
        error: CheckoutError | None = None,
        context: WriteContext | None = None,
    ) -> OrderResult:
        """Give up on a gateway payment that never reported back.

        Returns any store credit debited for the attempt. A payment the
        gateway already captured is never abandoned: the attempt stays
        pending until its outcome is settled.
        """
        async with self._lock_for(temp_order_id):
            attempt = self.get_attempt(temp_order_id)
            state = AttemptState(attempt.state)
            if state == AttemptState.CONFIRMED:
                return self._result(attempt)
            if state == AttemptState.FAILED:
                raise self._failure(attempt)
            if state not in (AttemptState.GATEWAY_PENDING, AttemptState.VERIFYING):
                raise PaymentVerificationError(
                    "This checkout is not awaiting a gateway payment",
                    attempted_amount=attempt.total_amount,
                    temp_order_id=temp_order_id,
                )
            if state == AttemptState.VERIFYING:
                record = self.gateway.get_record(attempt.gateway_order_id)
                if record is not None and record.is_paid:
                    return self._write_and_confirm(attempt, record.gateway_payment_id, context, gateway_paid=True)

            if await self._captured(attempt):
                raise GatewayUnavailableError(
                    "Your payment was received and is still being confirmed",
                    attempted_amount=attempt.total_amount,
                    temp_order_id=temp_order_id,
                )

            self.gateway.mark_failed(attempt.gateway_order_id, "No payment outcome received")
            raise self._fail(attempt, error or PaymentCancelledError("The payment was abandoned"))

    async def expire_pending(self, idle_seconds: float | None = None, as_of: datetime | None = None) -> int:
        """Abandon gateway payments idle for longer than ``idle_seconds``.

        Meant to be triggered periodically by an external scheduler.
        """
        if idle_seconds is None:
            idle_seconds = get_settings().gateway_outcome_timeout_seconds
        as_of = as_of or datetime.now(UTC)
        cutoff = _utc(as_of) - timedelta(seconds=idle_seconds)

        logger.info("Checking for expired gateway payments", cutoff=cutoff.isoformat(), idle_seconds=idle_seconds)

        with self.domain.domain_context():
            repo = self.domain.repository_for(CheckoutAttempt)
            pending = repo._dao.query.filter(state=AttemptState.GATEWAY_PENDING.value).all().items
        expired = [attempt for attempt in pending if attempt.updated_at and _utc(attempt.updated_at) <= cutoff]

        expired_count = 0
        for attempt in expired:
            temp_order_id = str(attempt.temp_order_id)
            try:
                await self.abandon(temp_order_id)
            except GatewayUnavailableError as exc:
                logger.warning("Could not expire gateway payment", temp_order_id=temp_order_id, error=exc.reason)
            except CheckoutError as exc:
                expired_count += 1
                logger.info(
                    "Expired gateway payment",
                    temp_order_id=temp_order_id,
                    code=exc.code,
                    last_updated=str(attempt.updated_at),
                )

        logger.info("Gateway payment expiry complete", expired_count=expired_count)
        return expired_count

    # -------------------------------------------------------------------
    # Attempt lookups
    # -------------------------------------------------------------------
    def find_attempt(self, temp_order_id: str) -> CheckoutAttempt | None:
        try:
            return self.get_attempt(temp_order_id)
        except ObjectNotFoundError:
            return None

    def get_attempt(self, temp_order_id: str) -> CheckoutAttempt:
        with self.domain.domain_context():
            return self.domain.repository_for(CheckoutAttempt).get(temp_order_id)

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    def _start(
        self,
        cart: Cart,
        selection: PaymentSelection,
        store_credit_requested: bool,
        customer: Customer,
        temp_order_id: str,
    ) -> CheckoutAttempt:
        try:
            validate_checkout(cart, selection)
            balance = 0
            wants_credit = store_credit_requested or selection.method == PaymentMethod.STORE_CREDIT.value
            if wants_credit and not customer.is_guest:
                balance = self.ledger.get_balance(customer.user_id)
            allocation = allocate(cart.total, balance, wants_credit, selection.method)
        except CheckoutError as exc:
            logger.warning("Checkout rejected", temp_order_id=temp_order_id, code=exc.code, reason=exc.reason)
            raise exc.bind(cart.total, temp_order_id)

        gateway_amount = allocation.remainder if allocation.method == PaymentMethod.GATEWAY.value else 0
        self._apply(
            StartCheckout(
                temp_order_id=temp_order_id,
                total_amount=cart.total,
                currency=cart.currency,
                requested_method=selection.method,
                resolved_method=allocation.method,
                credit_applied=allocation.credit,
                gateway_amount=gateway_amount,
                cart=_json(cart.to_dict()),
                customer=_json(customer.to_dict()),
                selection=_json(selection.to_dict()),
            )
        )
        logger.info(
            "Checkout started",
            temp_order_id=temp_order_id,
            user_id=customer.user_id,
            total_amount=cart.total,
            payment_method=allocation.method,
            credit_applied=allocation.credit,
            gateway_amount=gateway_amount,
        )
        return self.get_attempt(temp_order_id)

    async def _advance(self, attempt: CheckoutAttempt, context: WriteContext | None) -> "OrderResult | PendingPayment":
        temp_order_id = str(attempt.temp_order_id)
        state = AttemptState(attempt.state)

        if state == AttemptState.CONFIRMED:
            return self._result(attempt)
        if state == AttemptState.FAILED:
            raise self._failure(attempt)
        if state == AttemptState.GATEWAY_PENDING:
            return self._pending(attempt)
        if state == AttemptState.VERIFYING:
            record = self.gateway.get_record(attempt.gateway_order_id)
            if record is not None and record.is_paid:
                return self._write_and_confirm(attempt, record.gateway_payment_id, context, gateway_paid=True)
            return self._pending(attempt)

        if state == AttemptState.INIT and attempt.credit_applied > 0:
            self._reserve_credit(attempt)
            attempt = self.get_attempt(temp_order_id)

        if attempt.resolved_method == PaymentMethod.GATEWAY.value:
            return await self._start_gateway(attempt)
        if attempt.resolved_method == PaymentMethod.STORE_CREDIT.value:
            payment_id = f"CREDIT_{temp_order_id}"
        else:
            payment_id = COD_PENDING_PAYMENT_ID
        return self._write_and_confirm(attempt, payment_id, context)

    def _reserve_credit(self, attempt: CheckoutAttempt) -> None:
        temp_order_id = str(attempt.temp_order_id)
        user_id = str(attempt.customer_id)
        if self.ledger.entries_for_order(user_id, temp_order_id, transaction_type="debit"):
            logger.info("Store credit already debited for attempt", temp_order_id=temp_order_id, user_id=user_id)
        else:
            try:
                self.ledger.debit(
                    user_id,
                    attempt.credit_applied,
                    reason=f"payment:{temp_order_id}",
                    order_ref=temp_order_id,
                )
            except InsufficientFundsError as exc:
                raise self._fail(
                    attempt,
                    InsufficientCreditError("Your store credit balance no longer covers this amount"),
                ) from exc
        self._apply(ReserveCredit(temp_order_id=temp_order_id))

    async def _start_gateway(self, attempt: CheckoutAttempt) -> PendingPayment:
        temp_order_id = str(attempt.temp_order_id)
        try:
            gateway_order_id = await self.gateway.register_order(
                attempt.gateway_amount,
                attempt.currency,
                temp_order_id,
            )
        except (GatewayUnavailableError, PaymentFailedError) as exc:
            raise self._fail(attempt, exc) from exc

        self._apply(AwaitGatewayPayment(temp_order_id=temp_order_id, gateway_order_id=gateway_order_id))
        logger.info(
            "Awaiting gateway payment",
            temp_order_id=temp_order_id,
            gateway_order_id=gateway_order_id,
            amount=attempt.gateway_amount,
        )
        return self._pending(self.get_attempt(temp_order_id))

    def _write_and_confirm(
        self,
        attempt: CheckoutAttempt,
        payment_id: str,
        context: WriteContext | None,
        gateway_paid: bool = False,
    ) -> OrderResult:
        temp_order_id = str(attempt.temp_order_id)
        draft = self._draft(attempt, payment_id)
        try:
            order_id = self._write_order(draft, attempt, context)
        except IncompleteOrderError as exc:
            logger.error(
                "Order saved without items",
                temp_order_id=temp_order_id,
                order_id=exc.order_id,
            )
            raise exc.bind(attempt.total_amount, temp_order_id)
        except OrderWriteError as exc:
            if gateway_paid:
                logger.error(
                    "Gateway payment captured but the order was not written",
                    temp_order_id=temp_order_id,
                    user_id=attempt.customer_id,
                    gateway_order_id=attempt.gateway_order_id,
                    gateway_payment_id=payment_id,
                    amount=attempt.gateway_amount,
                    error=exc.reason,
                )
                reconciliation = ReconciliationError(
                    "Your payment was received but the order could not be saved",
                    details={"gateway_order_id": attempt.gateway_order_id, "gateway_payment_id": payment_id},
                )
                raise self._fail(attempt, reconciliation) from exc
            raise self._fail(attempt, exc) from exc

        self._apply(ConfirmCheckout(temp_order_id=temp_order_id, order_id=order_id))
        logger.info(
            "Checkout confirmed",
            temp_order_id=temp_order_id,
            order_id=order_id,
            payment_method=attempt.resolved_method,
            credit_applied=attempt.credit_applied,
            gateway_amount=attempt.gateway_amount,
        )
        return self._result(self.get_attempt(temp_order_id))

    def _write_order(self, draft: OrderDraft, attempt: CheckoutAttempt, context: WriteContext | None) -> str:
        if context is None:
            context = WriteContext.authenticated(str(attempt.customer_id)) if attempt.customer_id else WriteContext.anon()
        try:
            return self.orders.write_primary(draft, context)
        except AuthorizationDeniedError:
            logger.warning("Primary order write denied, using fallback", temp_order_id=draft.temp_order_id)
            return self.orders.write_fallback(draft)

    # -------------------------------------------------------------------
    # Failure and compensation
    # -------------------------------------------------------------------
    def _fail(self, attempt: CheckoutAttempt, error: CheckoutError) -> CheckoutError:
        """Compensate, record the failure and return the error to raise."""
        temp_order_id = str(attempt.temp_order_id)
        error.bind(attempt.total_amount, temp_order_id)
        final = error
        try:
            self._compensate(attempt)
        except ReconciliationError as reconciliation:
            reconciliation.__context__ = error
            final = reconciliation

        self._apply(FailCheckout(temp_order_id=temp_order_id, failure_code=final.code, failure_reason=final.reason))
        log = logger.error if isinstance(final, ReconciliationError) else logger.warning
        log(
            "Checkout failed",
            temp_order_id=temp_order_id,
            user_id=attempt.customer_id,
            code=final.code,
            reason=final.reason,
            attempted_amount=attempt.total_amount,
        )
        return final

    def _compensate(self, attempt: CheckoutAttempt) -> None:
        if not attempt.customer_id or not attempt.credit_applied or attempt.credit_compensated:
            return
        temp_order_id = str(attempt.temp_order_id)
        user_id = str(attempt.customer_id)

        debits = self.ledger.entries_for_order(user_id, temp_order_id, transaction_type="debit")
        if not debits:
            return
        if self.ledger.entries_for_order(user_id, temp_order_id, transaction_type="refund"):
            self._apply(RecordCreditCompensation(temp_order_id=temp_order_id))
            return

        amount = -sum(entry.amount for entry in debits)
        try:
            self.ledger.credit(
                user_id,
                amount,
                reason=f"reversal:{temp_order_id}",
                order_ref=temp_order_id,
                transaction_type="refund",
            )
        except Exception as exc:
            logger.error(
                "Compensating store credit failed",
                temp_order_id=temp_order_id,
                user_id=user_id,
                amount=amount,
                error=str(exc),
            )
            raise ReconciliationError(
                "Your store credit could not be returned automatically",
                attempted_amount=attempt.total_amount,
                temp_order_id=temp_order_id,
            ) from exc

        self._apply(RecordCreditCompensation(temp_order_id=temp_order_id))
        logger.info("Store credit compensated", temp_order_id=temp_order_id, user_id=user_id, amount=amount)

    def _failure(self, attempt: CheckoutAttempt) -> CheckoutError:
        """Rebuild the typed failure a failed attempt ended with."""
        error_cls = _FAILURES.get(attempt.failure_code, CheckoutError)
        return error_cls(
            attempt.failure_reason or "Checkout failed",
            attempted_amount=attempt.total_amount,
            temp_order_id=str(attempt.temp_order_id),
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _draft(self, attempt: CheckoutAttempt, payment_id: str) -> OrderDraft:
        cart = Cart.from_dict(attempt.snapshot("cart"))
        selection = attempt.snapshot("selection")
        return OrderDraft(
            temp_order_id=str(attempt.temp_order_id),
            total_amount=attempt.total_amount,
            payment_method=attempt.resolved_method,
            items=cart.order_items(),
            credit_applied=attempt.credit_applied or 0,
            gateway_amount=attempt.gateway_amount or 0,
            currency=attempt.currency,
            payment_id=payment_id,
            customer=attempt.snapshot("customer") or None,
            shipping_address=selection.get("shipping_address"),
            billing_address=selection.get("billing_address"),
            notes=selection.get("notes"),
        )

    def _result(self, attempt: CheckoutAttempt) -> OrderResult:
        order = self.orders.get(str(attempt.order_id))
        return OrderResult(
            order_id=str(order.id),
            temp_order_id=str(attempt.temp_order_id),
            payment_method=order.payment_method,
            credit_applied=order.credit_applied or 0,
            gateway_amount=order.gateway_amount or 0,
            total_amount=order.total_amount,
            status=order.status,
        )

    @staticmethod
    def _pending(attempt: CheckoutAttempt) -> PendingPayment:
        return PendingPayment(
            temp_order_id=str(attempt.temp_order_id),
            gateway_order_id=attempt.gateway_order_id,
            amount=attempt.gateway_amount,
            currency=attempt.currency,
            credit_applied=attempt.credit_applied or 0,
            total_amount=attempt.total_amount,
        )

    async def _captured(self, attempt: CheckoutAttempt) -> bool:
        captured = await self.gateway.is_captured(attempt.gateway_order_id)
        if captured:
            logger.warning(
                "Gateway holds a captured payment for a checkout being given up",
                temp_order_id=str(attempt.temp_order_id),
                gateway_order_id=attempt.gateway_order_id,
                credit_applied=attempt.credit_applied,
            )
        return captured

    def _apply(self, command):
        with self.domain.domain_context():
            return self.domain.process(command, asynchronous=False)

    @asynccontextmanager
    async def _lock_for(self, temp_order_id: str):
        """Serialize work on one attempt. The entry goes once nobody holds or awaits it."""
        entry = self._locks.setdefault(temp_order_id, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[temp_order_id]


def _json(value: dict) -> str:
    return json.dumps(value)


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)
