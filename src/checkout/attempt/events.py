"""Domain events for the CheckoutAttempt aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="CheckoutAttempt")
class CheckoutStarted:
    __version__ = 1

    temp_order_id = Identifier(required=True)
    customer_id = Identifier()
    total_amount = Integer(required=True)
    requested_method = String(required=True)
    resolved_method = String(required=True)
    credit_applied = Integer(required=True)
    gateway_amount = Integer(required=True)
    started_at = DateTime(required=True)


@checkout.event(part_of="CheckoutAttempt")
class CreditReserved:
    """Store credit was debited for this attempt."""

    __version__ = 1

    temp_order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Integer(required=True)
    reserved_at = DateTime(required=True)


@checkout.event(part_of="CheckoutAttempt")
class GatewayPaymentAwaited:
    """The payer was sent to the hosted gateway."""

    __version__ = 1

    temp_order_id = Identifier(required=True)
    gateway_order_id = String(required=True)
    amount = Integer(required=True)
    pending_at = DateTime(required=True)


@checkout.event(part_of="CheckoutAttempt")
class PaymentVerificationStarted:
    __version__ = 1

    temp_order_id = Identifier(required=True)
    gateway_order_id = String(required=True)
    gateway_payment_id = String(required=True)
    started_at = DateTime(required=True)


@checkout.event(part_of="CheckoutAttempt")
class CheckoutConfirmed:
    __version__ = 1

    temp_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_method = String(required=True)
    credit_applied = Integer(required=True)
    gateway_amount = Integer(required=True)
    confirmed_at = DateTime(required=True)


@checkout.event(part_of="CheckoutAttempt")
class CheckoutFailed:
    __version__ = 1

    temp_order_id = Identifier(required=True)
    failure_code = String(required=True)
    failure_reason = String(required=True)
    failed_at = DateTime(required=True)


@checkout.event(part_of="CheckoutAttempt")
class CreditCompensated:
    """Store credit taken by a failed attempt was given back."""

    __version__ = 1

    temp_order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Integer(required=True)
    compensated_at = DateTime(required=True)
