"""Pydantic request/response schemas for the Ordering API."""

import json
from datetime import datetime

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class CompleteCodOrderRequest(BaseModel):
    payment_id: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderItemResponse(BaseModel):
    product_id: str
    product_title: str
    product_image: str | None = None
    quantity: int
    unit_price: int
    total_price: int
    product_type: str
    poster_size: str | None = None
    options: dict | None = None


class OrderResponse(BaseModel):
    order_id: str
    temp_order_id: str
    customer_id: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    status: str
    payment_method: str
    payment_id: str | None = None
    total_amount: int
    credit_applied: int
    gateway_amount: int
    cod_collectable: int
    currency: str
    shipping_address: dict | None = None
    billing_address: dict | None = None
    notes: str | None = None
    items_recorded: bool
    written_via: str
    items: list[OrderItemResponse]
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            order_id=str(order.id),
            temp_order_id=order.temp_order_id,
            customer_id=str(order.customer_id) if order.customer_id else None,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            status=order.status,
            payment_method=order.payment_method,
            payment_id=order.payment_id,
            total_amount=order.total_amount,
            credit_applied=order.credit_applied or 0,
            gateway_amount=order.gateway_amount or 0,
            cod_collectable=order.cod_collectable,
            currency=order.currency,
            shipping_address=json.loads(order.shipping_address) if order.shipping_address else None,
            billing_address=json.loads(order.billing_address) if order.billing_address else None,
            notes=order.notes,
            items_recorded=bool(order.items_recorded),
            written_via=order.written_via,
            items=[
                OrderItemResponse(
                    product_id=str(item.product_id),
                    product_title=item.product_title,
                    product_image=item.product_image,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    product_type=item.product_type,
                    poster_size=item.poster_size,
                    options=json.loads(item.options) if item.options else None,
                )
                for item in order.items
            ],
            created_at=order.created_at,
            completed_at=order.completed_at,
        )


class IncompleteOrderSummary(BaseModel):
    order_id: str
    temp_order_id: str
    expected_item_count: int
    total_amount: int
