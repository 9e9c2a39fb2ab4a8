"""Split a checkout total between store credit and the selected method."""

from dataclasses import dataclass

from ordering.order.order import PaymentMethod
from shared.errors import InsufficientCreditError


@dataclass(frozen=True)
class Allocation:
    method: str
    credit: int
    remainder: int

    @property
    def is_hybrid(self) -> bool:
        return self.credit > 0 and self.remainder > 0


def allocate(total: int, balance: int, requested: bool, method: str) -> Allocation:
    """Apply ``min(balance, total)`` of credit when requested.

    Credit covering the whole total collapses any method to store credit.
    Choosing store credit explicitly needs a balance that covers the total.
    """
    wants_credit = requested or method == PaymentMethod.STORE_CREDIT.value
    credit = min(max(balance, 0), total) if wants_credit else 0

    if credit == total:
        return Allocation(method=PaymentMethod.STORE_CREDIT.value, credit=credit, remainder=0)
    if method == PaymentMethod.STORE_CREDIT.value:
        raise InsufficientCreditError(
            "Your store credit does not cover this order",
            attempted_amount=total,
        )
    return Allocation(method=method, credit=credit, remainder=total - credit)
