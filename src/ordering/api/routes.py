"""FastAPI routes for the Ordering domain — order lookup and COD completion."""

from fastapi import APIRouter

from ordering.api.schemas import CompleteCodOrderRequest, IncompleteOrderSummary, OrderResponse
from ordering.writer.writer import OrderWriter

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/incomplete", response_model=list[IncompleteOrderSummary])
async def list_incomplete_orders() -> list[IncompleteOrderSummary]:
    """Orders saved without their items, for operator follow-up."""
    return [
        IncompleteOrderSummary(
            order_id=str(order.id),
            temp_order_id=order.temp_order_id,
            expected_item_count=order.expected_item_count or 0,
            total_amount=order.total_amount,
        )
        for order in OrderWriter().find_incomplete()
    ]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return OrderResponse.from_order(OrderWriter().get(order_id))


@order_router.post("/{order_id}/complete", response_model=OrderResponse)
async def complete_cod_order(order_id: str, body: CompleteCodOrderRequest | None = None) -> OrderResponse:
    """Record cash collection for a pending cash-on-delivery order."""
    order = OrderWriter().complete_cod(order_id, payment_id=body.payment_id if body else None)
    return OrderResponse.from_order(order)
