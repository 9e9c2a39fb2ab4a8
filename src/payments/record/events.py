"""Domain events for the GatewayPayment record."""

from protean.fields import DateTime, Identifier, Integer, String

from payments.domain import payments


@payments.event(part_of="GatewayPayment")
class GatewayPaymentRegistered:
    """An order was registered with the hosted gateway."""

    __version__ = 1

    gateway_order_id = Identifier(required=True)
    correlation_id = String(required=True)
    amount = Integer(required=True)
    currency = String(required=True)
    registered_at = DateTime(required=True)


@payments.event(part_of="GatewayPayment")
class GatewayPaymentConfirmed:
    """The payment signature verified; the money is captured."""

    __version__ = 1

    gateway_order_id = Identifier(required=True)
    correlation_id = String(required=True)
    gateway_payment_id = String(required=True)
    amount = Integer(required=True)
    confirmed_at = DateTime(required=True)


@payments.event(part_of="GatewayPayment")
class GatewayPaymentFailed:
    """The payment failed, was cancelled, or its signature did not verify."""

    __version__ = 1

    gateway_order_id = Identifier(required=True)
    correlation_id = String(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)
