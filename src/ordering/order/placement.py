"""Order placement — commands and handlers.

``PlaceOrder`` writes the header row and ``RecordOrderItems`` the item rows.
They are separate commands so a failure between them leaves a detectable
incomplete order rather than a silently missing one.
"""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


def _loads(value):
    return json.loads(value) if isinstance(value, str) else value


@ordering.command(part_of="Order")
class PlaceOrder:
    temp_order_id = String(required=True, max_length=100)
    total_amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="INR")
    credit_applied = Integer(default=0)
    gateway_amount = Integer(default=0)
    payment_method = String(required=True)
    payment_id = String(max_length=100)
    items = Text(required=True)  # JSON: list of item dicts
    customer = Text()  # JSON: {user_id, name, email, phone}
    shipping_address = Text()  # JSON: address dict
    billing_address = Text()  # JSON: address dict
    notes = Text()
    written_via = String(default="primary")


@ordering.command(part_of="Order")
class RecordOrderItems:
    order_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts


@ordering.command_handler(part_of=Order)
class OrderPlacementHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.place(
            temp_order_id=command.temp_order_id,
            total_amount=command.total_amount,
            payment_method=command.payment_method,
            items_data=_loads(command.items),
            credit_applied=command.credit_applied or 0,
            gateway_amount=command.gateway_amount or 0,
            currency=command.currency or "INR",
            payment_id=command.payment_id,
            customer=_loads(command.customer) if command.customer else None,
            shipping_address=_loads(command.shipping_address) if command.shipping_address else None,
            billing_address=_loads(command.billing_address) if command.billing_address else None,
            notes=command.notes,
            written_via=command.written_via or "primary",
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)

    @handle(RecordOrderItems)
    def record_items(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_items(_loads(command.items))
        repo.add(order)
        return str(order.id)
