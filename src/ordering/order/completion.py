"""Cash-on-delivery completion — command and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class CompleteCodOrder:
    """Record that cash was collected for a pending COD order."""

    order_id = Identifier(required=True)
    payment_id = String(max_length=100)


@ordering.command_handler(part_of=Order)
class CompleteCodOrderHandler:
    @handle(CompleteCodOrder)
    def complete_cod_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.complete_cod(command.payment_id)
        repo.add(order)
        return order.status
