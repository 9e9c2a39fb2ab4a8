"""End-to-end checkout scenarios through PaymentOrchestrator.

Each scenario runs against the fake gateway, the in-memory ledger and the
order writer, and checks the order, the balance and the gateway record.
"""

import asyncio

from checkout.attempt.attempt import AttemptState
from checkout.cart import Cart, CartLine, Customer, PaymentSelection
from checkout.orchestrator import COD_PENDING_PAYMENT_ID, OrderResult, PendingPayment
from ordering.order.order import OrderStatus, WrittenVia
from ordering.writer.policy import WriteContext
from payments.record.record import GatewayPaymentStatus


def _run(coro):
    return asyncio.run(coro)


class TestFullStoreCredit:
    def test_credit_covering_total_needs_no_gateway(
        self, orchestrator, ledger, orders, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        ledger.credit(buyer.user_id, 250000, "Goodwill")

        result = _run(
            orchestrator.complete_checkout(
                poster_cart, gateway_selection, store_credit_requested=True, customer=buyer, temp_order_id="TEMP-A"
            )
        )

        assert result.payment_method == "store_credit"
        assert result.credit_applied == 100000
        assert result.gateway_amount == 0
        assert result.status == OrderStatus.COMPLETED.value
        assert ledger.get_balance(buyer.user_id) == 150000
        assert fake_gateway.calls == []

        order = orders.get(result.order_id)
        assert order.payment_id == "CREDIT_TEMP-A"
        assert order.items_recorded
        assert ledger.entries_for_order(buyer.user_id, "TEMP-A", "debit")[0].description == "payment:TEMP-A"

    def test_store_credit_method(self, orchestrator, ledger, digital_cart, buyer):
        ledger.credit(buyer.user_id, 50000, "Return")
        result = _run(orchestrator.complete_checkout(digital_cart, PaymentSelection(method="store_credit"), customer=buyer))
        assert result.payment_method == "store_credit"
        assert ledger.get_balance(buyer.user_id) == 0


class TestHybridCreditAndGateway:
    def test_credit_then_gateway_for_remainder(
        self, orchestrator, ledger, orders, gateway_adapter, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        ledger.credit(buyer.user_id, 30000, "Goodwill")

        result = _run(
            orchestrator.complete_checkout(
                poster_cart, gateway_selection, store_credit_requested=True, customer=buyer, temp_order_id="TEMP-B"
            )
        )

        assert result.payment_method == "gateway"
        assert result.credit_applied == 30000
        assert result.gateway_amount == 70000
        assert ledger.get_balance(buyer.user_id) == 0
        assert fake_gateway.calls[0]["amount"] == 70000

        record = gateway_adapter.find_by_correlation("TEMP-B")
        assert record.status == GatewayPaymentStatus.PAID.value
        order = orders.get(result.order_id)
        assert order.payment_id == record.gateway_payment_id
        assert order.shipping_address


class TestGatewayOnly:
    def test_begin_then_settle(self, orchestrator, fake_gateway, poster_cart, gateway_selection, buyer):
        pending = _run(orchestrator.begin(poster_cart, gateway_selection, customer=buyer, temp_order_id="TEMP-C"))
        assert isinstance(pending, PendingPayment)
        assert pending.amount == 100000
        assert pending.credit_applied == 0
        assert orchestrator.get_attempt("TEMP-C").state == AttemptState.GATEWAY_PENDING.value

        outcome = fake_gateway.outcome_for(pending.gateway_order_id)
        result = _run(orchestrator.settle("TEMP-C", outcome))

        assert isinstance(result, OrderResult)
        assert result.gateway_amount == 100000
        assert orchestrator.get_attempt("TEMP-C").state == AttemptState.CONFIRMED.value

    def test_guest_checkout(self, orchestrator, orders, poster_cart, gateway_selection):
        result = _run(
            orchestrator.complete_checkout(poster_cart, gateway_selection, customer=Customer(name="Guest", email="g@example.com"))
        )
        assert orders.get(result.order_id).customer_id is None

    def test_credit_ignored_for_guest(self, orchestrator, poster_cart, gateway_selection):
        result = _run(orchestrator.complete_checkout(poster_cart, gateway_selection, store_credit_requested=True))
        assert result.credit_applied == 0
        assert result.gateway_amount == 100000


class TestCashOnDelivery:
    def test_cod_order_is_pending_collection(self, orchestrator, orders, fake_gateway, poster_cart, buyer, shipping):
        result = _run(
            orchestrator.complete_checkout(
                poster_cart, PaymentSelection(method="cod", shipping_address=shipping), customer=buyer
            )
        )
        assert result.payment_method == "cod"
        assert result.status == OrderStatus.PENDING.value
        assert fake_gateway.calls == []

        order = orders.get(result.order_id)
        assert order.payment_id == COD_PENDING_PAYMENT_ID
        assert order.cod_collectable == 100000

    def test_credit_with_cod_collects_remainder(self, orchestrator, ledger, orders, poster_cart, buyer):
        ledger.credit(buyer.user_id, 40000, "Goodwill")
        result = _run(
            orchestrator.complete_checkout(
                poster_cart, PaymentSelection(method="cod"), store_credit_requested=True, customer=buyer
            )
        )
        assert result.credit_applied == 40000
        assert orders.get(result.order_id).cod_collectable == 60000
        assert ledger.get_balance(buyer.user_id) == 0


class TestWritePaths:
    def test_denied_primary_write_uses_fallback_once(self, orchestrator, orders, poster_cart, buyer):
        result = _run(
            orchestrator.complete_checkout(
                poster_cart,
                PaymentSelection(method="cod"),
                customer=buyer,
                context=WriteContext.authenticated("someone-else"),
            )
        )
        assert orders.get(result.order_id).written_via == WrittenVia.FALLBACK.value

    def test_zero_total_cart_needs_no_payment(self, orchestrator, fake_gateway, buyer):
        cart = Cart(lines=[CartLine(product_id="free", title="Sample", quantity=1, unit_price=0, product_type="digital")])
        result = _run(orchestrator.complete_checkout(cart, PaymentSelection(method="gateway"), customer=buyer))
        assert result.payment_method == "store_credit"
        assert result.total_amount == 0
        assert fake_gateway.calls == []
