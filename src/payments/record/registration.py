"""Gateway order registration — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from payments.domain import payments
from payments.record.record import GatewayPayment


@payments.command(part_of="GatewayPayment")
class RegisterGatewayPayment:
    """Record an order the hosted gateway has just created."""

    gateway_order_id = Identifier(required=True)
    correlation_id = String(required=True, max_length=100)
    amount = Integer(required=True, min_value=1)
    currency = String(required=True, max_length=3)


@payments.command_handler(part_of=GatewayPayment)
class RegisterGatewayPaymentHandler:
    @handle(RegisterGatewayPayment)
    def register(self, command):
        record = GatewayPayment.register(
            gateway_order_id=command.gateway_order_id,
            correlation_id=command.correlation_id,
            amount=command.amount,
            currency=command.currency,
        )
        current_domain.repository_for(GatewayPayment).add(record)
        return str(record.gateway_order_id)
