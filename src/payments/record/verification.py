"""Payment confirmation and failure — commands and handler.

Confirmation is only ever issued after the signature verified. Confirming
an already-paid record with the same payment id is a no-op, so a replayed
callback cannot double-record a payment.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from payments.domain import payments
from payments.record.record import GatewayPayment, GatewayPaymentStatus


@payments.command(part_of="GatewayPayment")
class ConfirmGatewayPayment:
    gateway_order_id = Identifier(required=True)
    gateway_payment_id = String(required=True, max_length=100)


@payments.command(part_of="GatewayPayment")
class FailGatewayPayment:
    gateway_order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    gateway_payment_id = String(max_length=100)


@payments.command_handler(part_of=GatewayPayment)
class GatewayPaymentVerificationHandler:
    @handle(ConfirmGatewayPayment)
    def confirm(self, command):
        repo = current_domain.repository_for(GatewayPayment)
        record = repo.get(command.gateway_order_id)
        if record.is_paid and record.gateway_payment_id == command.gateway_payment_id:
            return record.status
        record.confirm(command.gateway_payment_id)
        repo.add(record)
        return record.status

    @handle(FailGatewayPayment)
    def fail(self, command):
        repo = current_domain.repository_for(GatewayPayment)
        record = repo.get(command.gateway_order_id)
        if record.status == GatewayPaymentStatus.FAILED.value:
            return record.status
        record.fail(command.reason, command.gateway_payment_id)
        repo.add(record)
        return record.status
