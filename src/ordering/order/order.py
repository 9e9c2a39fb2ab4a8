"""Order aggregate (CQRS) — the durable record of a completed checkout.

An order is written in two steps: the header row (``place``) and then its
item rows (``record_items``). A header whose items never landed is
*incomplete* and stays detectable through ``items_recorded``. Everything a
write could reject is checked in ``place`` against the full item payload,
before the header exists.

Amounts are integer minor units.

State Machine:
    PENDING → COMPLETED   (cash collected on a COD order)
    COMPLETED             (paid in full at checkout)
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String, Text

from ordering.domain import ordering
from ordering.order.events import CodOrderCompleted, OrderItemsRecorded, OrderPlaced


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class PaymentMethod(Enum):
    GATEWAY = "gateway"
    COD = "cod"
    STORE_CREDIT = "store_credit"


class ProductType(Enum):
    DIGITAL = "digital"
    POSTER = "poster"
    CLOTHING = "clothing"


class WrittenVia(Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


PHYSICAL_TYPES = {ProductType.POSTER.value, ProductType.CLOTHING.value}

_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),  # Terminal
}


def is_physical(product_type: str) -> bool:
    return product_type in PHYSICAL_TYPES


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    product_title = String(required=True, max_length=255)
    product_image = String(max_length=1000)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    total_price = Integer(required=True, min_value=0)
    product_type = String(required=True, choices=ProductType)
    poster_size = String(max_length=50)
    options = Text()  # JSON: selected variant options


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    temp_order_id = String(required=True, max_length=100)
    customer_id = Identifier()
    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    customer_phone = String(max_length=50)
    items = HasMany(OrderItem)
    total_amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="INR")
    credit_applied = Integer(default=0, min_value=0)
    gateway_amount = Integer(default=0, min_value=0)
    payment_method = String(required=True, choices=PaymentMethod)
    payment_id = String(max_length=100)
    shipping_address = Text()  # JSON snapshot, never updated
    billing_address = Text()  # JSON snapshot, never updated
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    notes = Text()
    expected_item_count = Integer(default=0, min_value=0)
    items_recorded = Boolean(default=False)
    written_via = String(choices=WrittenVia, default=WrittenVia.PRIMARY.value)
    created_at = DateTime()
    updated_at = DateTime()
    completed_at = DateTime()

    @invariant.post
    def payment_split_must_match_total(self):
        credit = self.credit_applied or 0
        gateway = self.gateway_amount or 0
        if self.payment_method == PaymentMethod.COD.value:
            if gateway != 0 or credit >= self.total_amount:
                raise ValidationError({"payment_method": ["COD collects the remainder after store credit"]})
        elif credit + gateway != self.total_amount:
            raise ValidationError({"total_amount": ["Store credit and gateway amounts must add up to the total"]})

    @invariant.post
    def recorded_items_must_sum_to_total(self):
        if not self.items_recorded:
            return
        if sum(item.total_price for item in self.items) != self.total_amount:
            raise ValidationError({"items": ["Item totals must add up to the order total"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        temp_order_id: str,
        total_amount: int,
        payment_method: str,
        items_data: list[dict],
        credit_applied: int = 0,
        gateway_amount: int = 0,
        currency: str = "INR",
        payment_id: str | None = None,
        customer: dict | None = None,
        shipping_address: dict | None = None,
        billing_address: dict | None = None,
        notes: str | None = None,
        written_via: str = WrittenVia.PRIMARY.value,
    ):
        """Write the order header after validating the whole order."""
        cls.validate_items(items_data, total_amount, payment_method)

        now = datetime.now(UTC)
        status = OrderStatus.PENDING if payment_method == PaymentMethod.COD.value else OrderStatus.COMPLETED
        customer = customer or {}
        order = cls(
            temp_order_id=temp_order_id,
            customer_id=customer.get("user_id"),
            customer_name=customer.get("name"),
            customer_email=customer.get("email"),
            customer_phone=customer.get("phone"),
            total_amount=total_amount,
            currency=currency,
            credit_applied=credit_applied,
            gateway_amount=gateway_amount,
            payment_method=payment_method,
            payment_id=payment_id,
            shipping_address=json.dumps(shipping_address) if shipping_address else None,
            billing_address=json.dumps(billing_address) if billing_address else None,
            status=status.value,
            notes=notes,
            expected_item_count=len(items_data),
            written_via=written_via,
            created_at=now,
            updated_at=now,
            completed_at=now if status == OrderStatus.COMPLETED else None,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                temp_order_id=temp_order_id,
                customer_id=order.customer_id,
                total_amount=total_amount,
                credit_applied=credit_applied,
                gateway_amount=gateway_amount,
                currency=currency,
                payment_method=payment_method,
                payment_id=payment_id,
                status=status.value,
                written_via=written_via,
                placed_at=now,
            )
        )
        return order

    @staticmethod
    def validate_items(items_data: list[dict], total_amount: int, payment_method: str) -> None:
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        errors: list[str] = []
        running_total = 0
        for index, item in enumerate(items_data):
            quantity = item.get("quantity") or 0
            unit_price = item.get("unit_price")
            if quantity < 1:
                errors.append(f"Item {index}: quantity must be at least 1")
            if unit_price is None or unit_price < 0:
                errors.append(f"Item {index}: unit price must not be negative")
                continue
            if item.get("product_type") not in {t.value for t in ProductType}:
                errors.append(f"Item {index}: unknown product type '{item.get('product_type')}'")
            running_total += unit_price * quantity
        if errors:
            raise ValidationError({"items": errors})

        if running_total != total_amount:
            raise ValidationError({"total_amount": [f"Order total {total_amount} does not match items {running_total}"]})
        if payment_method == PaymentMethod.COD.value and not any(
            is_physical(item["product_type"]) for item in items_data
        ):
            raise ValidationError({"payment_method": ["Cash on delivery needs at least one physical item"]})

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def record_items(self, items_data: list[dict]) -> None:
        """Write the item rows. Runs once; recording again is a no-op."""
        if self.items_recorded:
            return
        now = datetime.now(UTC)
        with atomic_change(self):
            for item in items_data:
                options = item.get("options")
                self.add_items(
                    OrderItem(
                        product_id=item["product_id"],
                        product_title=item["product_title"],
                        product_image=item.get("product_image"),
                        quantity=item["quantity"],
                        unit_price=item["unit_price"],
                        total_price=item["unit_price"] * item["quantity"],
                        product_type=item["product_type"],
                        poster_size=item.get("poster_size"),
                        options=json.dumps(options) if options else None,
                    )
                )
            self.items_recorded = True
            self.updated_at = now
        self.raise_(
            OrderItemsRecorded(
                order_id=str(self.id),
                temp_order_id=self.temp_order_id,
                item_count=len(items_data),
                recorded_at=now,
            )
        )

    def complete_cod(self, payment_id: str | None = None) -> None:
        """Cash was collected on delivery."""
        self._assert_can_transition(OrderStatus.COMPLETED)
        if self.payment_method != PaymentMethod.COD.value:
            raise ValidationError({"payment_method": ["Only cash on delivery orders are completed on collection"]})
        now = datetime.now(UTC)
        self.status = OrderStatus.COMPLETED.value
        if payment_id:
            self.payment_id = payment_id
        self.completed_at = now
        self.updated_at = now
        self.raise_(
            CodOrderCompleted(
                order_id=str(self.id),
                temp_order_id=self.temp_order_id,
                amount_collected=self.cod_collectable,
                payment_id=self.payment_id,
                completed_at=now,
            )
        )

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_incomplete(self) -> bool:
        return not self.items_recorded

    @property
    def cod_collectable(self) -> int:
        if self.payment_method != PaymentMethod.COD.value:
            return 0
        return self.total_amount - (self.credit_applied or 0)
