"""Hosted payment gateway port.

The payer completes payment on the gateway's own surface; the checkout core
only registers an order, learns the outcome and verifies the signature that
accompanies a success. Adapters: ``FakeGateway`` (dev/test) and
``RazorpayGateway`` (production).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class OutcomeStatus(Enum):
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class GatewayOrder:
    """An order registered on the gateway before the payer is sent there."""

    gateway_order_id: str
    amount: int
    currency: str
    correlation_id: str
    status: str = "created"


@dataclass(frozen=True)
class GatewayOutcome:
    """What the payer did on the gateway surface.

    ``gateway_payment_id`` and ``signature`` are only present for ``PAID``.
    A paid outcome is untrusted until its signature verifies.
    """

    status: OutcomeStatus
    gateway_order_id: str
    gateway_payment_id: str | None = None
    signature: str | None = None
    failure_reason: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == OutcomeStatus.PAID

    @property
    def is_cancelled(self) -> bool:
        return self.status == OutcomeStatus.CANCELLED


class GatewayNetworkError(Exception):
    """Transient transport failure. Safe to retry."""


class GatewayDeclinedError(Exception):
    """The gateway rejected the request. Never retried."""


class HostedGateway(ABC):
    @abstractmethod
    async def create_order(self, amount: int, currency: str, correlation_id: str) -> GatewayOrder:
        """Register an order for ``amount`` minor units."""
        ...

    @abstractmethod
    async def await_outcome(self, gateway_order_id: str) -> GatewayOutcome:
        """Wait until the payer completes, fails or abandons payment."""
        ...

    @abstractmethod
    async def is_captured(self, gateway_order_id: str) -> bool:
        """Whether the gateway holds a captured payment for this order."""
        ...


class SignatureVerifier(ABC):
    @abstractmethod
    async def verify(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        ...
