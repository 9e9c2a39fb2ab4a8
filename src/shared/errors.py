"""Checkout failure taxonomy shared by every bounded context.

Each failure carries enough detail for the caller to route the buyer to a
failure view: a stable ``code``, a human-readable ``reason`` and the amount
that was being paid. Ledger balances, gateway keys and signatures never
appear on these objects.
"""

from enum import Enum


class WriteFailureKind(Enum):
    AUTHORIZATION = "authorization"
    UNAVAILABLE = "unavailable"
    VALIDATION = "validation"
    INCOMPLETE = "incomplete"
    UNKNOWN = "unknown"


class CheckoutError(Exception):
    """Base class for every typed checkout failure."""

    code = "checkout_failed"
    http_status = 400

    def __init__(
        self,
        reason: str,
        *,
        attempted_amount: int | None = None,
        temp_order_id: str | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.attempted_amount = attempted_amount
        self.temp_order_id = temp_order_id
        self.details = details or {}

    def bind(self, attempted_amount: int | None, temp_order_id: str | None) -> "CheckoutError":
        """Attach attempt context without overwriting values already set."""
        if self.attempted_amount is None:
            self.attempted_amount = attempted_amount
        if self.temp_order_id is None:
            self.temp_order_id = temp_order_id
        return self

    def to_failure_view(self) -> dict:
        return {
            "code": self.code,
            "reason": self.reason,
            "attempted_amount": self.attempted_amount,
            "temp_order_id": self.temp_order_id,
        }


# ---------------------------------------------------------------------------
# Validation-class failures (rejected before any side effect)
# ---------------------------------------------------------------------------
class EmptyCartError(CheckoutError):
    code = "empty_cart"


class CodNotAllowedError(CheckoutError):
    code = "cod_not_allowed"


# ---------------------------------------------------------------------------
# Payment failures
# ---------------------------------------------------------------------------
class InsufficientCreditError(CheckoutError):
    code = "insufficient_credit"
    http_status = 409


class PaymentFailedError(CheckoutError):
    code = "payment_failed"
    http_status = 402


class PaymentCancelledError(PaymentFailedError):
    code = "payment_cancelled"
    http_status = 409


class PaymentVerificationError(CheckoutError):
    code = "payment_verification_failed"
    http_status = 422


class GatewayUnavailableError(CheckoutError):
    code = "gateway_unavailable"
    http_status = 503


# ---------------------------------------------------------------------------
# Order write failures
# ---------------------------------------------------------------------------
class OrderWriteError(CheckoutError):
    code = "order_write_failed"
    http_status = 500
    kind = WriteFailureKind.UNKNOWN


class AuthorizationDeniedError(OrderWriteError):
    """The primary write path was rejected by the row-level policy.

    Triggers the fallback write; never shown to the buyer directly.
    """

    code = "authorization_denied"
    http_status = 403
    kind = WriteFailureKind.AUTHORIZATION


class FallbackUnavailableError(OrderWriteError):
    code = "fallback_unavailable"
    http_status = 503
    kind = WriteFailureKind.UNAVAILABLE


class OrderValidationError(OrderWriteError):
    code = "order_invalid"
    http_status = 400
    kind = WriteFailureKind.VALIDATION


class IncompleteOrderError(OrderWriteError):
    """The order row was written but its item rows were not."""

    code = "order_incomplete"
    kind = WriteFailureKind.INCOMPLETE

    def __init__(self, reason: str, *, order_id: str, **kwargs) -> None:
        super().__init__(reason, **kwargs)
        self.order_id = order_id


# ---------------------------------------------------------------------------
# Money taken without a matching order or refund
# ---------------------------------------------------------------------------
class ReconciliationError(CheckoutError):
    code = "reconciliation_required"
    http_status = 500
