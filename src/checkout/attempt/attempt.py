"""CheckoutAttempt aggregate (CQRS) — one checkout, keyed by its temp order id.

Persists how far an attempt got so that replaying it with the same
``temp_order_id`` resumes instead of starting over.

State Machine:
    INIT → CREDIT_RESERVED → CONFIRMED            (store credit, COD)
    INIT → CREDIT_RESERVED → GATEWAY_PENDING      (hybrid)
    INIT → GATEWAY_PENDING → VERIFYING → CONFIRMED
    any non-terminal state → FAILED
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from checkout.attempt.events import (
    CheckoutConfirmed,
    CheckoutFailed,
    CheckoutStarted,
    CreditCompensated,
    CreditReserved,
    GatewayPaymentAwaited,
    PaymentVerificationStarted,
)
from checkout.domain import checkout


class AttemptState(Enum):
    INIT = "init"
    CREDIT_RESERVED = "credit_reserved"
    GATEWAY_PENDING = "gateway_pending"
    VERIFYING = "verifying"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    AttemptState.INIT: {
        AttemptState.CREDIT_RESERVED,
        AttemptState.GATEWAY_PENDING,
        AttemptState.CONFIRMED,
        AttemptState.FAILED,
    },
    AttemptState.CREDIT_RESERVED: {AttemptState.GATEWAY_PENDING, AttemptState.CONFIRMED, AttemptState.FAILED},
    AttemptState.GATEWAY_PENDING: {AttemptState.VERIFYING, AttemptState.FAILED},
    AttemptState.VERIFYING: {AttemptState.CONFIRMED, AttemptState.FAILED},
    AttemptState.CONFIRMED: set(),  # Terminal
    AttemptState.FAILED: set(),  # Terminal
}


@checkout.aggregate
class CheckoutAttempt:
    temp_order_id = Identifier(identifier=True, required=True)
    customer_id = Identifier()
    state = String(choices=AttemptState, default=AttemptState.INIT.value)
    total_amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="INR")
    requested_method = String(required=True, max_length=20)
    resolved_method = String(required=True, max_length=20)
    credit_applied = Integer(default=0, min_value=0)
    gateway_amount = Integer(default=0, min_value=0)
    gateway_order_id = String(max_length=100)
    gateway_payment_id = String(max_length=100)
    order_id = Identifier()
    failure_code = String(max_length=50)
    failure_reason = String(max_length=500)
    credit_compensated = Boolean(default=False)
    cart = Text()  # JSON snapshot of the priced cart
    customer = Text()  # JSON snapshot of the buyer
    selection = Text()  # JSON snapshot of the payment selection
    created_at = DateTime()
    updated_at = DateTime()

    def _assert_can_transition(self, target: AttemptState) -> None:
        current = AttemptState(self.state)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"state": [f"Cannot transition from {current.value} to {target.value}"]})

    def _move_to(self, target: AttemptState) -> datetime:
        self._assert_can_transition(target)
        now = datetime.now(UTC)
        self.state = target.value
        self.updated_at = now
        return now

    @classmethod
    def start(
        cls,
        temp_order_id: str,
        total_amount: int,
        currency: str,
        requested_method: str,
        resolved_method: str,
        credit_applied: int,
        gateway_amount: int,
        cart: dict,
        customer: dict,
        selection: dict,
    ):
        now = datetime.now(UTC)
        attempt = cls(
            temp_order_id=temp_order_id,
            customer_id=customer.get("user_id"),
            total_amount=total_amount,
            currency=currency,
            requested_method=requested_method,
            resolved_method=resolved_method,
            credit_applied=credit_applied,
            gateway_amount=gateway_amount,
            cart=json.dumps(cart),
            customer=json.dumps(customer),
            selection=json.dumps(selection),
            created_at=now,
            updated_at=now,
        )
        attempt.raise_(
            CheckoutStarted(
                temp_order_id=temp_order_id,
                customer_id=attempt.customer_id,
                total_amount=total_amount,
                requested_method=requested_method,
                resolved_method=resolved_method,
                credit_applied=credit_applied,
                gateway_amount=gateway_amount,
                started_at=now,
            )
        )
        return attempt

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def reserve_credit(self) -> None:
        now = self._move_to(AttemptState.CREDIT_RESERVED)
        self.raise_(
            CreditReserved(
                temp_order_id=str(self.temp_order_id),
                customer_id=self.customer_id,
                amount=self.credit_applied,
                reserved_at=now,
            )
        )

    def await_gateway(self, gateway_order_id: str) -> None:
        now = self._move_to(AttemptState.GATEWAY_PENDING)
        self.gateway_order_id = gateway_order_id
        self.raise_(
            GatewayPaymentAwaited(
                temp_order_id=str(self.temp_order_id),
                gateway_order_id=gateway_order_id,
                amount=self.gateway_amount,
                pending_at=now,
            )
        )

    def begin_verification(self, gateway_payment_id: str) -> None:
        now = self._move_to(AttemptState.VERIFYING)
        self.gateway_payment_id = gateway_payment_id
        self.raise_(
            PaymentVerificationStarted(
                temp_order_id=str(self.temp_order_id),
                gateway_order_id=self.gateway_order_id,
                gateway_payment_id=gateway_payment_id,
                started_at=now,
            )
        )

    def confirm(self, order_id: str) -> None:
        now = self._move_to(AttemptState.CONFIRMED)
        self.order_id = order_id
        self.raise_(
            CheckoutConfirmed(
                temp_order_id=str(self.temp_order_id),
                order_id=order_id,
                payment_method=self.resolved_method,
                credit_applied=self.credit_applied,
                gateway_amount=self.gateway_amount,
                confirmed_at=now,
            )
        )

    def fail(self, code: str, reason: str) -> None:
        now = self._move_to(AttemptState.FAILED)
        self.failure_code = code
        self.failure_reason = reason
        self.raise_(
            CheckoutFailed(
                temp_order_id=str(self.temp_order_id),
                failure_code=code,
                failure_reason=reason,
                failed_at=now,
            )
        )

    def mark_compensated(self) -> None:
        if self.credit_compensated:
            return
        now = datetime.now(UTC)
        self.credit_compensated = True
        self.updated_at = now
        self.raise_(
            CreditCompensated(
                temp_order_id=str(self.temp_order_id),
                customer_id=self.customer_id,
                amount=self.credit_applied,
                compensated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return self.state in (AttemptState.CONFIRMED.value, AttemptState.FAILED.value)

    def snapshot(self, name: str) -> dict:
        value = getattr(self, name)
        return json.loads(value) if value else {}
