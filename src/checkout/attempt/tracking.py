"""Checkout attempt tracking — commands and handler."""

import json

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.attempt.attempt import CheckoutAttempt
from checkout.domain import checkout


@checkout.command(part_of="CheckoutAttempt")
class StartCheckout:
    temp_order_id = Identifier(required=True)
    total_amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="INR")
    requested_method = String(required=True)
    resolved_method = String(required=True)
    credit_applied = Integer(default=0)
    gateway_amount = Integer(default=0)
    cart = Text(required=True)  # JSON
    customer = Text(required=True)  # JSON
    selection = Text(required=True)  # JSON


@checkout.command(part_of="CheckoutAttempt")
class ReserveCredit:
    temp_order_id = Identifier(required=True)


@checkout.command(part_of="CheckoutAttempt")
class AwaitGatewayPayment:
    temp_order_id = Identifier(required=True)
    gateway_order_id = String(required=True)


@checkout.command(part_of="CheckoutAttempt")
class BeginPaymentVerification:
    temp_order_id = Identifier(required=True)
    gateway_payment_id = String(required=True)


@checkout.command(part_of="CheckoutAttempt")
class ConfirmCheckout:
    temp_order_id = Identifier(required=True)
    order_id = Identifier(required=True)


@checkout.command(part_of="CheckoutAttempt")
class FailCheckout:
    temp_order_id = Identifier(required=True)
    failure_code = String(required=True)
    failure_reason = String(required=True)


@checkout.command(part_of="CheckoutAttempt")
class RecordCreditCompensation:
    temp_order_id = Identifier(required=True)


@checkout.command_handler(part_of=CheckoutAttempt)
class CheckoutAttemptHandler:
    @handle(StartCheckout)
    def start(self, command):
        attempt = CheckoutAttempt.start(
            temp_order_id=command.temp_order_id,
            total_amount=command.total_amount,
            currency=command.currency or "INR",
            requested_method=command.requested_method,
            resolved_method=command.resolved_method,
            credit_applied=command.credit_applied or 0,
            gateway_amount=command.gateway_amount or 0,
            cart=json.loads(command.cart),
            customer=json.loads(command.customer),
            selection=json.loads(command.selection),
        )
        current_domain.repository_for(CheckoutAttempt).add(attempt)
        return attempt.state

    @handle(ReserveCredit)
    def reserve_credit(self, command):
        return self._update(command.temp_order_id, lambda a: a.reserve_credit())

    @handle(AwaitGatewayPayment)
    def await_gateway(self, command):
        return self._update(command.temp_order_id, lambda a: a.await_gateway(command.gateway_order_id))

    @handle(BeginPaymentVerification)
    def begin_verification(self, command):
        return self._update(command.temp_order_id, lambda a: a.begin_verification(command.gateway_payment_id))

    @handle(ConfirmCheckout)
    def confirm(self, command):
        return self._update(command.temp_order_id, lambda a: a.confirm(command.order_id))

    @handle(FailCheckout)
    def fail(self, command):
        return self._update(
            command.temp_order_id,
            lambda a: a.fail(command.failure_code, command.failure_reason),
        )

    @handle(RecordCreditCompensation)
    def record_compensation(self, command):
        return self._update(command.temp_order_id, lambda a: a.mark_compensated())

    @staticmethod
    def _update(temp_order_id, change):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.get(temp_order_id)
        change(attempt)
        repo.add(attempt)
        return attempt.state
