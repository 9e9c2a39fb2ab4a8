"""Failure paths: typed errors, credit compensation and reconciliation."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from checkout.attempt.attempt import AttemptState, CheckoutAttempt
from checkout.cart import Cart, CartLine, PaymentSelection
from checkout.orchestrator import PaymentOrchestrator
from ordering.writer.policy import WriteContext
from ordering.writer.writer import OrderWriter
from payments.gateway.port import GatewayNetworkError, GatewayOutcome, OutcomeStatus
from payments.record.record import GatewayPaymentStatus
from shared.config import Settings
from shared.errors import (
    CodNotAllowedError,
    EmptyCartError,
    GatewayUnavailableError,
    InsufficientCreditError,
    PaymentCancelledError,
    PaymentFailedError,
    PaymentVerificationError,
    ReconciliationError,
)


def _run(coro):
    return asyncio.run(coro)


def _hybrid(orchestrator, ledger, cart, selection, buyer, temp_order_id="TEMP-F", credit=30000):
    ledger.credit(buyer.user_id, credit, "Goodwill")
    return _run(
        orchestrator.begin(cart, selection, store_credit_requested=True, customer=buyer, temp_order_id=temp_order_id)
    )


class TestRejectedBeforeSideEffects:
    def test_empty_cart(self, orchestrator):
        with pytest.raises(EmptyCartError) as exc:
            _run(orchestrator.begin(Cart(), PaymentSelection(method="gateway"), temp_order_id="TEMP-E"))
        assert exc.value.temp_order_id == "TEMP-E"
        assert orchestrator.find_attempt("TEMP-E") is None

    def test_cod_for_digital_only_cart(self, orchestrator, digital_cart, buyer):
        with pytest.raises(CodNotAllowedError) as exc:
            _run(orchestrator.begin(digital_cart, PaymentSelection(method="cod"), customer=buyer))
        assert exc.value.attempted_amount == 50000

    def test_store_credit_short_balance(self, orchestrator, ledger, poster_cart, buyer):
        ledger.credit(buyer.user_id, 99999, "Goodwill")
        with pytest.raises(InsufficientCreditError):
            _run(orchestrator.begin(poster_cart, PaymentSelection(method="store_credit"), customer=buyer))
        assert ledger.get_balance(buyer.user_id) == 99999

    def test_balance_spent_between_allocation_and_debit(
        self, orchestrator, ledger, poster_cart, gateway_selection, buyer, monkeypatch
    ):
        ledger.credit(buyer.user_id, 10000, "Goodwill")
        monkeypatch.setattr(ledger, "get_balance", lambda user_id: 30000)

        with pytest.raises(InsufficientCreditError):
            _run(
                orchestrator.begin(
                    poster_cart, gateway_selection, store_credit_requested=True, customer=buyer, temp_order_id="TEMP-F"
                )
            )
        attempt = orchestrator.get_attempt("TEMP-F")
        assert attempt.state == AttemptState.FAILED.value
        assert attempt.failure_code == "insufficient_credit"


class TestGatewayOutcomeFailures:
    def test_cancelled_payment_returns_credit(
        self, orchestrator, ledger, gateway_adapter, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        pending = _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        assert ledger.get_balance(buyer.user_id) == 0

        fake_gateway.configure(outcome="cancelled")
        with pytest.raises(PaymentCancelledError) as exc:
            _run(orchestrator.settle("TEMP-F", fake_gateway.outcome_for(pending.gateway_order_id)))

        assert exc.value.attempted_amount == 100000
        assert ledger.get_balance(buyer.user_id) == 30000
        refund = ledger.entries_for_order(buyer.user_id, "TEMP-F", "refund")[0]
        assert refund.description == "reversal:TEMP-F"
        assert refund.amount == 30000

        attempt = orchestrator.get_attempt("TEMP-F")
        assert attempt.state == AttemptState.FAILED.value
        assert attempt.credit_compensated
        assert gateway_adapter.get_record(pending.gateway_order_id).status == GatewayPaymentStatus.FAILED.value

    def test_declined_payment(self, orchestrator, fake_gateway, poster_cart, gateway_selection, buyer):
        fake_gateway.configure(outcome="failed", failure_reason="Card expired")
        with pytest.raises(PaymentFailedError, match="Card expired") as exc:
            _run(orchestrator.complete_checkout(poster_cart, gateway_selection, customer=buyer))
        assert not isinstance(exc.value, PaymentCancelledError)

    def test_tampered_signature_fails_verification(
        self, orchestrator, ledger, gateway_adapter, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        pending = _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        fake_gateway.configure(tamper_signature=True)

        with pytest.raises(PaymentVerificationError):
            _run(orchestrator.settle("TEMP-F", fake_gateway.outcome_for(pending.gateway_order_id)))

        assert ledger.get_balance(buyer.user_id) == 30000
        assert gateway_adapter.get_record(pending.gateway_order_id).status == GatewayPaymentStatus.FAILED.value
        assert orchestrator.orders.find_by_temp_order_id("TEMP-F") is None

    def test_paid_outcome_without_payment_id(self, orchestrator, fake_gateway, poster_cart, gateway_selection, buyer):
        pending = _run(orchestrator.begin(poster_cart, gateway_selection, customer=buyer, temp_order_id="TEMP-P"))
        outcome = GatewayOutcome(status=OutcomeStatus.PAID, gateway_order_id=pending.gateway_order_id, signature="x")
        with pytest.raises(PaymentVerificationError):
            _run(orchestrator.settle("TEMP-P", outcome))

    def test_outcome_for_other_order_changes_nothing(
        self, orchestrator, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        pending = _run(orchestrator.begin(poster_cart, gateway_selection, customer=buyer, temp_order_id="TEMP-M"))
        with pytest.raises(PaymentVerificationError):
            _run(orchestrator.settle("TEMP-M", fake_gateway.outcome_for("order_someone_else")))
        assert orchestrator.get_attempt("TEMP-M").state == AttemptState.GATEWAY_PENDING.value

        result = _run(orchestrator.settle("TEMP-M", fake_gateway.outcome_for(pending.gateway_order_id)))
        assert result.gateway_amount == 100000

    def test_settle_on_confirmed_attempt_returns_its_order(self, orchestrator, poster_cart, buyer, fake_gateway):
        confirmed = _run(
            orchestrator.begin(poster_cart, PaymentSelection(method="cod"), customer=buyer, temp_order_id="TEMP-N")
        )
        assert _run(orchestrator.settle("TEMP-N", fake_gateway.outcome_for("order_x"))) == confirmed

    def test_cancelled_outcome_for_captured_payment_is_refused(
        self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        pending = _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        paid = fake_gateway.outcome_for(pending.gateway_order_id)
        cancelled = GatewayOutcome(status=OutcomeStatus.CANCELLED, gateway_order_id=pending.gateway_order_id)

        with pytest.raises(PaymentVerificationError):
            _run(orchestrator.settle("TEMP-F", cancelled))
        assert orchestrator.get_attempt("TEMP-F").state == AttemptState.GATEWAY_PENDING.value
        assert ledger.entries_for_order(buyer.user_id, "TEMP-F", "refund") == []

        result = _run(orchestrator.settle("TEMP-F", paid))
        assert result.credit_applied == 30000
        assert ledger.get_balance(buyer.user_id) == 0


class TestGatewayUnavailable:
    def test_registration_failure_returns_credit(
        self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        fake_gateway.configure(transient_failures=10)
        with pytest.raises(GatewayUnavailableError):
            _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        assert ledger.get_balance(buyer.user_id) == 30000
        assert orchestrator.get_attempt("TEMP-F").state == AttemptState.FAILED.value

    def test_transient_registration_failure_is_retried(
        self, orchestrator, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        fake_gateway.configure(transient_failures=2)
        result = _run(orchestrator.complete_checkout(poster_cart, gateway_selection, customer=buyer))
        assert result.gateway_amount == 100000

    def test_declined_registration(self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer):
        fake_gateway.configure(decline_orders=True)
        with pytest.raises(PaymentFailedError):
            _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        assert ledger.get_balance(buyer.user_id) == 30000

    def test_missing_outcome_returns_credit(
        self, orchestrator, ledger, gateway_adapter, fake_gateway, poster_cart, gateway_selection, buyer, monkeypatch
    ):
        async def no_outcome(gateway_order_id):
            raise GatewayNetworkError("timed out")

        monkeypatch.setattr(fake_gateway, "await_outcome", no_outcome)
        ledger.credit(buyer.user_id, 30000, "Goodwill")
        with pytest.raises(GatewayUnavailableError):
            _run(
                orchestrator.complete_checkout(
                    poster_cart, gateway_selection, store_credit_requested=True, customer=buyer, temp_order_id="TEMP-T"
                )
            )

        attempt = orchestrator.get_attempt("TEMP-T")
        assert attempt.state == AttemptState.FAILED.value
        assert attempt.credit_compensated
        assert ledger.get_balance(buyer.user_id) == 30000
        assert gateway_adapter.get_record(attempt.gateway_order_id).status == GatewayPaymentStatus.FAILED.value

    def test_missing_outcome_with_captured_payment_stays_pending(
        self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer, monkeypatch
    ):
        async def no_outcome(gateway_order_id):
            fake_gateway.captured.add(gateway_order_id)
            raise GatewayNetworkError("timed out")

        monkeypatch.setattr(fake_gateway, "await_outcome", no_outcome)
        ledger.credit(buyer.user_id, 30000, "Goodwill")
        with pytest.raises(GatewayUnavailableError):
            _run(
                orchestrator.complete_checkout(
                    poster_cart, gateway_selection, store_credit_requested=True, customer=buyer, temp_order_id="TEMP-T"
                )
            )

        attempt = orchestrator.get_attempt("TEMP-T")
        assert attempt.state == AttemptState.GATEWAY_PENDING.value
        assert ledger.get_balance(buyer.user_id) == 0
        result = _run(orchestrator.settle("TEMP-T", fake_gateway.outcome_for(attempt.gateway_order_id)))
        assert result.credit_applied == 30000


class TestAbandon:
    def test_abandon_returns_credit(self, orchestrator, ledger, poster_cart, gateway_selection, buyer):
        _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        with pytest.raises(PaymentCancelledError):
            _run(orchestrator.abandon("TEMP-F"))
        assert ledger.get_balance(buyer.user_id) == 30000
        assert orchestrator.get_attempt("TEMP-F").failure_code == "payment_cancelled"

    def test_abandon_twice_repeats_the_failure(self, orchestrator, ledger, poster_cart, gateway_selection, buyer):
        _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        for _ in range(2):
            with pytest.raises(PaymentCancelledError):
                _run(orchestrator.abandon("TEMP-F"))
        assert len(ledger.entries_for_order(buyer.user_id, "TEMP-F", "refund")) == 1

    def test_abandon_after_confirmation_returns_the_order(
        self, orchestrator, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        pending = _run(orchestrator.begin(poster_cart, gateway_selection, customer=buyer, temp_order_id="TEMP-F"))
        confirmed = _run(orchestrator.settle("TEMP-F", fake_gateway.outcome_for(pending.gateway_order_id)))
        assert _run(orchestrator.abandon("TEMP-F")) == confirmed

    def test_abandon_is_refused_when_gateway_captured(
        self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        pending = _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        fake_gateway.captured.add(pending.gateway_order_id)
        with pytest.raises(GatewayUnavailableError):
            _run(orchestrator.abandon("TEMP-F"))
        assert orchestrator.get_attempt("TEMP-F").state == AttemptState.GATEWAY_PENDING.value
        assert ledger.get_balance(buyer.user_id) == 0

    def test_abandon_outside_gateway_payment(self, orchestrator, ledger, poster_cart, buyer, monkeypatch):
        ledger.credit(buyer.user_id, 250000, "Goodwill")

        def crash(self):
            raise RuntimeError("process died")

        with monkeypatch.context() as patch:
            patch.setattr(CheckoutAttempt, "reserve_credit", crash)
            with pytest.raises(RuntimeError):
                _run(
                    orchestrator.begin(
                        poster_cart, PaymentSelection(method="store_credit"), customer=buyer, temp_order_id="TEMP-F"
                    )
                )
        with pytest.raises(PaymentVerificationError):
            _run(orchestrator.abandon("TEMP-F"))


class TestExpirePending:
    def test_idle_gateway_payments_are_expired(self, orchestrator, ledger, poster_cart, gateway_selection, buyer):
        _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        later = datetime.now(UTC) + timedelta(minutes=20)

        assert _run(orchestrator.expire_pending(idle_seconds=900, as_of=later)) == 1
        assert orchestrator.get_attempt("TEMP-F").state == AttemptState.FAILED.value
        assert ledger.get_balance(buyer.user_id) == 30000

    def test_recent_gateway_payments_are_kept(self, orchestrator, ledger, poster_cart, gateway_selection, buyer):
        _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        assert _run(orchestrator.expire_pending(idle_seconds=900)) == 0
        assert orchestrator.get_attempt("TEMP-F").state == AttemptState.GATEWAY_PENDING.value
        assert ledger.get_balance(buyer.user_id) == 0

    def test_captured_payments_are_not_expired(
        self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer
    ):
        pending = _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        fake_gateway.captured.add(pending.gateway_order_id)
        later = datetime.now(UTC) + timedelta(hours=1)

        assert _run(orchestrator.expire_pending(idle_seconds=900, as_of=later)) == 0
        assert orchestrator.get_attempt("TEMP-F").state == AttemptState.GATEWAY_PENDING.value

    def test_threshold_defaults_to_outcome_timeout(self, orchestrator, ledger, poster_cart, gateway_selection, buyer):
        _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)
        assert _run(orchestrator.expire_pending(as_of=datetime.now(UTC) + timedelta(seconds=60))) == 0
        assert _run(orchestrator.expire_pending(as_of=datetime.now(UTC) + timedelta(hours=1))) == 1


class TestReconciliation:
    def test_paid_but_order_not_written(self, ledger, gateway_adapter, fake_gateway, poster_cart, gateway_selection, buyer):
        orders = OrderWriter(settings=Settings(service_role_key=""))
        orchestrator = PaymentOrchestrator(ledger, gateway_adapter, orders)
        ledger.credit(buyer.user_id, 30000, "Goodwill")

        with pytest.raises(ReconciliationError) as exc:
            _run(
                orchestrator.complete_checkout(
                    poster_cart,
                    gateway_selection,
                    store_credit_requested=True,
                    customer=buyer,
                    temp_order_id="TEMP-R",
                    context=WriteContext.authenticated("intruder"),
                )
            )

        record = gateway_adapter.find_by_correlation("TEMP-R")
        assert record.is_paid
        assert exc.value.details["gateway_payment_id"] == record.gateway_payment_id
        assert ledger.get_balance(buyer.user_id) == 30000
        assert orchestrator.get_attempt("TEMP-R").failure_code == "reconciliation_required"

    def test_failed_compensation(
        self, orchestrator, ledger, fake_gateway, poster_cart, gateway_selection, buyer, monkeypatch
    ):
        pending = _hybrid(orchestrator, ledger, poster_cart, gateway_selection, buyer)

        def refuse(*args, **kwargs):
            raise RuntimeError("ledger offline")

        monkeypatch.setattr(ledger, "credit", refuse)
        fake_gateway.configure(outcome="cancelled")
        with pytest.raises(ReconciliationError) as exc:
            _run(orchestrator.settle("TEMP-F", fake_gateway.outcome_for(pending.gateway_order_id)))

        assert isinstance(exc.value.__context__, PaymentCancelledError)
        attempt = orchestrator.get_attempt("TEMP-F")
        assert attempt.failure_code == "reconciliation_required"
        assert not attempt.credit_compensated
        assert ledger.get_balance(buyer.user_id) == 0
