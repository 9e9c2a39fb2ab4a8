"""Shared BDD fixtures and step definitions for checkout orchestration."""

import pytest
from checkout.cart import Cart, CartLine, Customer
from ordering.writer.policy import WriteContext
from pytest_bdd import given, parsers


@pytest.fixture()
def error():
    """Container for the typed checkout failure, if any."""
    return {"exc": None}


@pytest.fixture()
def checkout_context():
    """Write identity used for the order; None means the buyer's own."""
    return {"context": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a signed-in buyer", target_fixture="customer")
def signed_in_buyer():
    return Customer(user_id="user-bdd", name="Meera", email="meera@example.com")


@given(parsers.cfparse("the buyer has a store credit balance of {amount:d}"))
def buyer_balance(ledger, customer, amount):
    ledger.credit(customer.user_id, amount, "Opening balance")


@given(parsers.cfparse("a cart totalling {amount:d}"), target_fixture="cart")
def cart_totalling(amount):
    return Cart(
        lines=[
            CartLine(
                product_id="prod-bdd",
                title="Harbour Print",
                quantity=1,
                unit_price=amount,
                product_type="poster",
                poster_size="A2",
            )
        ]
    )


@given("the payer will cancel at the gateway")
def payer_cancels(fake_gateway):
    fake_gateway.configure(outcome="cancelled")


@given("the gateway returns a tampered signature")
def tampered_signature(fake_gateway):
    fake_gateway.configure(tamper_signature=True)


@given("the primary order write is denied")
def primary_write_denied(checkout_context):
    checkout_context["context"] = WriteContext.authenticated("not-the-buyer")
