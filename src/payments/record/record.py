"""GatewayPayment aggregate (CQRS) — our record of a hosted gateway order.

Created before the payer is sent to the gateway, keyed by the gateway's
order id and unique per correlation id (the checkout's temp order id).

State Machine:
    CREATED → PAID     (signature verified, exactly once)
    CREATED → FAILED   (declined, cancelled, or signature mismatch)
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from payments.domain import payments
from payments.record.events import (
    GatewayPaymentConfirmed,
    GatewayPaymentFailed,
    GatewayPaymentRegistered,
)


class GatewayPaymentStatus(Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"


_VALID_TRANSITIONS = {
    GatewayPaymentStatus.CREATED: {GatewayPaymentStatus.PAID, GatewayPaymentStatus.FAILED},
    GatewayPaymentStatus.PAID: set(),  # Terminal
    GatewayPaymentStatus.FAILED: set(),  # Terminal
}


@payments.aggregate
class GatewayPayment:
    gateway_order_id = Identifier(identifier=True, required=True)
    correlation_id = String(required=True, max_length=100)
    amount = Integer(required=True, min_value=1)
    currency = String(required=True, max_length=3)
    status = String(choices=GatewayPaymentStatus, default=GatewayPaymentStatus.CREATED.value)
    gateway_payment_id = String(max_length=100)
    signature_verified = Boolean(default=False)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    def _assert_can_transition(self, target_status: GatewayPaymentStatus) -> None:
        current = GatewayPaymentStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    @classmethod
    def register(cls, gateway_order_id: str, correlation_id: str, amount: int, currency: str):
        now = datetime.now(UTC)
        record = cls(
            gateway_order_id=gateway_order_id,
            correlation_id=correlation_id,
            amount=amount,
            currency=currency,
            created_at=now,
            updated_at=now,
        )
        record.raise_(
            GatewayPaymentRegistered(
                gateway_order_id=gateway_order_id,
                correlation_id=correlation_id,
                amount=amount,
                currency=currency,
                registered_at=now,
            )
        )
        return record

    @property
    def is_paid(self) -> bool:
        return self.status == GatewayPaymentStatus.PAID.value

    def confirm(self, gateway_payment_id: str) -> None:
        """Mark paid. Only called after the signature verified."""
        self._assert_can_transition(GatewayPaymentStatus.PAID)
        now = datetime.now(UTC)
        self.status = GatewayPaymentStatus.PAID.value
        self.gateway_payment_id = gateway_payment_id
        self.signature_verified = True
        self.updated_at = now
        self.raise_(
            GatewayPaymentConfirmed(
                gateway_order_id=str(self.gateway_order_id),
                correlation_id=self.correlation_id,
                gateway_payment_id=gateway_payment_id,
                amount=self.amount,
                confirmed_at=now,
            )
        )

    def fail(self, reason: str, gateway_payment_id: str | None = None) -> None:
        self._assert_can_transition(GatewayPaymentStatus.FAILED)
        now = datetime.now(UTC)
        self.status = GatewayPaymentStatus.FAILED.value
        self.failure_reason = reason
        if gateway_payment_id:
            self.gateway_payment_id = gateway_payment_id
        self.updated_at = now
        self.raise_(
            GatewayPaymentFailed(
                gateway_order_id=str(self.gateway_order_id),
                correlation_id=self.correlation_id,
                reason=reason,
                failed_at=now,
            )
        )
