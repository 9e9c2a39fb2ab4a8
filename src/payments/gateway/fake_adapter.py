"""Configurable fake hosted gateway for development and testing.

Simulates the hosted checkout without any external calls. It can be told to
have the payer pay, fail or walk away, to drop the first N order requests
on the floor (transient network failures), to decline order creation, or to
hand back a tampered signature. Paid outcomes are signed with the real HMAC
so they go through the same verifier as production ones.
"""

from uuid import uuid4

from payments.gateway.port import (
    GatewayDeclinedError,
    GatewayNetworkError,
    GatewayOrder,
    GatewayOutcome,
    HostedGateway,
    OutcomeStatus,
)
from payments.gateway.signature import sign


class FakeGateway(HostedGateway):
    def __init__(self, secret: str = "fake-gateway-secret") -> None:
        self.secret = secret
        self.orders: dict[str, GatewayOrder] = {}
        self.calls: list[dict] = []
        self.captured: set[str] = set()
        self.configure()

    def configure(
        self,
        outcome: str = "paid",
        failure_reason: str = "Payment declined by issuer",
        transient_failures: int = 0,
        decline_orders: bool = False,
        tamper_signature: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.outcome = OutcomeStatus(outcome)
        self.failure_reason = failure_reason
        self.transient_failures = transient_failures
        self.decline_orders = decline_orders
        self.tamper_signature = tamper_signature

    async def create_order(self, amount: int, currency: str, correlation_id: str) -> GatewayOrder:
        self.calls.append(
            {
                "method": "create_order",
                "amount": amount,
                "currency": currency,
                "correlation_id": correlation_id,
            }
        )
        if self.transient_failures > 0:
            self.transient_failures -= 1
            raise GatewayNetworkError("Connection reset by peer")
        if self.decline_orders:
            raise GatewayDeclinedError("Order creation declined")

        order = GatewayOrder(
            gateway_order_id=f"order_fake_{uuid4().hex[:14]}",
            amount=amount,
            currency=currency,
            correlation_id=correlation_id,
        )
        self.orders[order.gateway_order_id] = order
        return order

    async def await_outcome(self, gateway_order_id: str) -> GatewayOutcome:
        self.calls.append({"method": "await_outcome", "gateway_order_id": gateway_order_id})
        return self.outcome_for(gateway_order_id)

    async def is_captured(self, gateway_order_id: str) -> bool:
        self.calls.append({"method": "is_captured", "gateway_order_id": gateway_order_id})
        if self.transient_failures > 0:
            self.transient_failures -= 1
            raise GatewayNetworkError("Connection reset by peer")
        return gateway_order_id in self.captured

    def outcome_for(self, gateway_order_id: str) -> GatewayOutcome:
        """Build the outcome the payer would produce for ``gateway_order_id``.

        A paid outcome also marks the order captured on the gateway side.
        """
        if self.outcome == OutcomeStatus.PAID:
            self.captured.add(gateway_order_id)
            payment_id = f"pay_fake_{uuid4().hex[:14]}"
            signature = sign(self.secret, gateway_order_id, payment_id)
            if self.tamper_signature:
                signature = signature[::-1]
            return GatewayOutcome(
                status=OutcomeStatus.PAID,
                gateway_order_id=gateway_order_id,
                gateway_payment_id=payment_id,
                signature=signature,
            )
        if self.outcome == OutcomeStatus.CANCELLED:
            return GatewayOutcome(
                status=OutcomeStatus.CANCELLED,
                gateway_order_id=gateway_order_id,
                failure_reason="Payer closed the payment window",
            )
        return GatewayOutcome(
            status=OutcomeStatus.FAILED,
            gateway_order_id=gateway_order_id,
            failure_reason=self.failure_reason,
        )
