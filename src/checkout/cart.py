"""Checkout inputs — the priced cart, the buyer and their payment choice.

Prices are integer minor units. The cart arrives already priced; this core
never looks prices up.
"""

import time
from dataclasses import asdict, dataclass, field
from uuid import uuid4

from ordering.order.order import PaymentMethod, ProductType, is_physical
from shared.errors import CodNotAllowedError, EmptyCartError, OrderValidationError

_PRODUCT_TYPES = {t.value for t in ProductType}
_SELECTABLE_METHODS = {m.value for m in PaymentMethod}


def new_temp_order_id() -> str:
    """Client-side idempotency token, generated before any side effect."""
    return f"TEMP-{int(time.time() * 1000)}-{uuid4().hex[:8]}"


@dataclass(frozen=True)
class CartLine:
    product_id: str
    title: str
    quantity: int
    unit_price: int
    product_type: str
    image: str | None = None
    poster_size: str | None = None
    options: dict | None = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    @property
    def is_physical(self) -> bool:
        return is_physical(self.product_type)

    def to_order_item(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_title": self.title,
            "product_image": self.image,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "product_type": self.product_type,
            "poster_size": self.poster_size,
            "options": self.options,
        }


@dataclass(frozen=True)
class Cart:
    lines: list[CartLine] = field(default_factory=list)
    currency: str = "INR"

    @property
    def total(self) -> int:
        return sum(line.line_total for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def has_physical_item(self) -> bool:
        return any(line.is_physical for line in self.lines)

    def order_items(self) -> list[dict]:
        return [line.to_order_item() for line in self.lines]

    def to_dict(self) -> dict:
        return {"currency": self.currency, "lines": [asdict(line) for line in self.lines]}

    @classmethod
    def from_dict(cls, data: dict) -> "Cart":
        return cls(lines=[CartLine(**line) for line in data["lines"]], currency=data.get("currency", "INR"))


@dataclass(frozen=True)
class Customer:
    user_id: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PaymentSelection:
    method: str
    shipping_address: dict | None = None
    billing_address: dict | None = None
    notes: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def validate_checkout(cart: Cart, selection: PaymentSelection) -> None:
    """Reject a checkout before anything is debited, registered or written."""
    if cart.is_empty:
        raise EmptyCartError("Your cart is empty")

    problems = []
    for index, line in enumerate(cart.lines):
        if line.quantity < 1:
            problems.append(f"Line {index}: quantity must be at least 1")
        if line.unit_price < 0:
            problems.append(f"Line {index}: unit price must not be negative")
        if line.product_type not in _PRODUCT_TYPES:
            problems.append(f"Line {index}: unknown product type '{line.product_type}'")
    if problems:
        raise OrderValidationError("; ".join(problems), attempted_amount=cart.total, details={"lines": problems})

    if selection.method not in _SELECTABLE_METHODS:
        raise OrderValidationError(f"Unknown payment method '{selection.method}'", attempted_amount=cart.total)
    if selection.method == PaymentMethod.COD.value and not cart.has_physical_item:
        raise CodNotAllowedError(
            "Cash on delivery is only available for orders with a physical item",
            attempted_amount=cart.total,
        )
