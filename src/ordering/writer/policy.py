"""Row-level insert policy for orders.

Mirrors what the order store enforces per row: a signed-in buyer may only
write orders for themselves, an anonymous buyer only guest orders, and the
service role may write anything.
"""

from dataclasses import dataclass
from enum import Enum

import structlog

from shared.errors import AuthorizationDeniedError

logger = structlog.get_logger(__name__)


class Role(Enum):
    ANON = "anon"
    AUTHENTICATED = "authenticated"
    SERVICE = "service"


@dataclass(frozen=True)
class WriteContext:
    principal_id: str | None = None
    role: Role = Role.ANON

    @classmethod
    def anon(cls) -> "WriteContext":
        return cls(None, Role.ANON)

    @classmethod
    def authenticated(cls, user_id: str) -> "WriteContext":
        return cls(user_id, Role.AUTHENTICATED)

    @classmethod
    def service(cls) -> "WriteContext":
        return cls(None, Role.SERVICE)


class RowLevelPolicy:
    def __init__(self, allow_guest_orders: bool = True) -> None:
        self.allow_guest_orders = allow_guest_orders

    def check_insert(self, context: WriteContext, customer_id: str | None, temp_order_id: str | None = None) -> None:
        """Raise ``AuthorizationDeniedError`` unless ``context`` may write this order."""
        if context.role == Role.SERVICE:
            return
        if context.role == Role.AUTHENTICATED:
            if context.principal_id and customer_id == context.principal_id:
                return
            reason = "Signed-in users may only place orders for themselves"
        elif customer_id is None and self.allow_guest_orders:
            return
        elif customer_id is None:
            reason = "Guest orders are not accepted"
        else:
            reason = "Anonymous callers cannot place orders for a customer"

        logger.warning(
            "Order insert denied by row-level policy",
            role=context.role.value,
            principal_id=context.principal_id,
            customer_id=customer_id,
            temp_order_id=temp_order_id,
        )
        raise AuthorizationDeniedError(reason, temp_order_id=temp_order_id)
