"""Replaying a checkout with the same temp order id resumes, never repeats."""

import asyncio

import pytest
from checkout.attempt.attempt import AttemptState, CheckoutAttempt
from checkout.cart import PaymentSelection
from ordering.order.order import Order
from shared.errors import IncompleteOrderError, PaymentCancelledError


def _run(coro):
    return asyncio.run(coro)


class TestReplay:
    def test_replayed_begin_reuses_gateway_order_and_debit(
        self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        ledger.credit(buyer.user_id, 30000, "Goodwill")
        first = _run(
            orchestrator.begin(poster_cart, gateway_selection, store_credit_requested=True, customer=buyer, temp_order_id="TEMP-R1")
        )
        second = _run(
            orchestrator.begin(poster_cart, gateway_selection, store_credit_requested=True, customer=buyer, temp_order_id="TEMP-R1")
        )

        assert first == second
        assert len([c for c in fake_gateway.calls if c["method"] == "create_order"]) == 1
        assert len(ledger.entries_for_order(buyer.user_id, "TEMP-R1", "debit")) == 1

    def test_replay_after_confirmation_returns_same_order(self, orchestrator, orders, poster_cart, gateway_selection, buyer):
        first = _run(orchestrator.complete_checkout(poster_cart, gateway_selection, customer=buyer, temp_order_id="TEMP-R2"))
        second = _run(orchestrator.complete_checkout(poster_cart, gateway_selection, customer=buyer, temp_order_id="TEMP-R2"))
        assert first.order_id == second.order_id

    def test_replay_after_failure_repeats_the_failure(
        self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        ledger.credit(buyer.user_id, 30000, "Goodwill")
        fake_gateway.configure(outcome="cancelled")
        for _ in range(2):
            with pytest.raises(PaymentCancelledError):
                _run(
                    orchestrator.complete_checkout(
                        poster_cart, gateway_selection, store_credit_requested=True, customer=buyer, temp_order_id="TEMP-R3"
                    )
                )
        assert ledger.get_balance(buyer.user_id) == 30000
        assert len(ledger.entries_for_order(buyer.user_id, "TEMP-R3", "refund")) == 1

    def test_repeated_settle_is_idempotent(self, orchestrator, fake_gateway, poster_cart, gateway_selection, buyer):
        pending = _run(orchestrator.begin(poster_cart, gateway_selection, customer=buyer, temp_order_id="TEMP-R4"))
        outcome = fake_gateway.outcome_for(pending.gateway_order_id)
        assert _run(orchestrator.settle("TEMP-R4", outcome)) == _run(orchestrator.settle("TEMP-R4", outcome))

    def test_concurrent_begins_share_one_attempt(self, orchestrator, ledger, fake_gateway, poster_cart, buyer):
        ledger.credit(buyer.user_id, 250000, "Goodwill")
        selection = PaymentSelection(method="store_credit")

        async def race():
            return await asyncio.gather(
                *(orchestrator.begin(poster_cart, selection, customer=buyer, temp_order_id="TEMP-R5") for _ in range(3))
            )

        results = _run(race())
        assert len({r.order_id for r in results}) == 1
        assert ledger.get_balance(buyer.user_id) == 150000
        assert orchestrator._locks == {}

    def test_attempt_locks_do_not_outlive_checkouts(self, orchestrator, poster_cart, buyer):
        selection = PaymentSelection(method="cod")

        async def checkouts():
            for n in range(200):
                await orchestrator.complete_checkout(poster_cart, selection, customer=buyer, temp_order_id=f"TEMP-L{n}")

        _run(checkouts())
        assert len(orchestrator._locks) == 0

    def test_crash_after_debit_is_not_debited_again(self, orchestrator, ledger, orders, poster_cart, buyer, monkeypatch):
        ledger.credit(buyer.user_id, 250000, "Goodwill")
        selection = PaymentSelection(method="store_credit")

        def crash(self):
            raise RuntimeError("process died")

        with monkeypatch.context() as patch:
            patch.setattr(CheckoutAttempt, "reserve_credit", crash)
            with pytest.raises(RuntimeError):
                _run(orchestrator.begin(poster_cart, selection, customer=buyer, temp_order_id="TEMP-R7"))

        assert orchestrator.get_attempt("TEMP-R7").state == AttemptState.INIT.value
        assert ledger.get_balance(buyer.user_id) == 150000

        result = _run(orchestrator.begin(poster_cart, selection, customer=buyer, temp_order_id="TEMP-R7"))
        assert result.payment_method == "store_credit"
        assert len(ledger.entries_for_order(buyer.user_id, "TEMP-R7", "debit")) == 1
        assert ledger.get_balance(buyer.user_id) == 150000
        assert str(orders.find_by_temp_order_id("TEMP-R7").id) == result.order_id


class TestIncompleteOrderResume:
    def test_items_failure_is_resumed_on_replay(
        self, orchestrator, ledger, orders, poster_cart, buyer, monkeypatch
    ):
        ledger.credit(buyer.user_id, 250000, "Goodwill")
        selection = PaymentSelection(method="store_credit")

        def boom(self, items_data):
            raise RuntimeError("item insert failed")

        with monkeypatch.context() as patch:
            patch.setattr(Order, "record_items", boom)
            with pytest.raises(IncompleteOrderError) as exc:
                _run(orchestrator.begin(poster_cart, selection, customer=buyer, temp_order_id="TEMP-R6"))

        assert exc.value.temp_order_id == "TEMP-R6"
        attempt = orchestrator.get_attempt("TEMP-R6")
        assert attempt.state == AttemptState.CREDIT_RESERVED.value
        assert ledger.get_balance(buyer.user_id) == 150000

        result = _run(orchestrator.begin(poster_cart, selection, customer=buyer, temp_order_id="TEMP-R6"))
        assert result.order_id == exc.value.order_id
        assert orders.get(result.order_id).items_recorded
        assert ledger.get_balance(buyer.user_id) == 150000
