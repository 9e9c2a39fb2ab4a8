"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """The order header row was written."""

    __version__ = 1

    order_id = Identifier(required=True)
    temp_order_id = String(required=True)
    customer_id = Identifier()
    total_amount = Integer(required=True)
    credit_applied = Integer(required=True)
    gateway_amount = Integer(required=True)
    currency = String(required=True)
    payment_method = String(required=True)
    payment_id = String()
    status = String(required=True)
    written_via = String(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderItemsRecorded:
    """All item rows for an order were written."""

    __version__ = 1

    order_id = Identifier(required=True)
    temp_order_id = String(required=True)
    item_count = Integer(required=True)
    recorded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class CodOrderCompleted:
    """Cash was collected for a cash-on-delivery order."""

    __version__ = 1

    order_id = Identifier(required=True)
    temp_order_id = String(required=True)
    amount_collected = Integer(required=True)
    payment_id = String()
    completed_at = DateTime(required=True)
