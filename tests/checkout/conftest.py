import pytest
from checkout.cart import Cart, CartLine, Customer, PaymentSelection
from checkout.orchestrator import PaymentOrchestrator
from ordering.writer.writer import OrderWriter
from payments.adapter import GatewayAdapter
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.retry import RetryPolicy
from payments.gateway.signature import HmacSignatureVerifier
from shared.config import Settings
from storecredit.ledger import CreditLedger


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield


@pytest.fixture()
def fake_gateway():
    return FakeGateway(secret="checkout-test-secret")


@pytest.fixture()
def ledger():
    return CreditLedger()


@pytest.fixture()
def orders():
    return OrderWriter(settings=Settings(service_role_key="test-service-key"))


@pytest.fixture()
def gateway_adapter(fake_gateway):
    return GatewayAdapter(
        fake_gateway,
        HmacSignatureVerifier(fake_gateway.secret),
        retry=RetryPolicy(max_attempts=3, base_delay=0, jitter=False),
    )


@pytest.fixture()
def orchestrator(ledger, gateway_adapter, orders):
    return PaymentOrchestrator(ledger, gateway_adapter, orders)


@pytest.fixture()
def poster_cart():
    """One physical poster priced at 100000 paise."""
    return Cart(
        lines=[
            CartLine(
                product_id="prod-poster",
                title="Monsoon Poster",
                quantity=1,
                unit_price=100000,
                product_type="poster",
                poster_size="A3",
            )
        ]
    )


@pytest.fixture()
def digital_cart():
    return Cart(
        lines=[
            CartLine(product_id="prod-ebook", title="Field Guide eBook", quantity=2, unit_price=25000, product_type="digital")
        ]
    )


@pytest.fixture()
def buyer():
    return Customer(user_id="user-001", name="Asha", email="asha@example.com", phone="+919800000000")


@pytest.fixture()
def shipping():
    return {"line1": "12 MG Road", "city": "Pune", "postal_code": "411001", "country": "IN"}


@pytest.fixture()
def gateway_selection(shipping):
    return PaymentSelection(method="gateway", shipping_address=shipping)
