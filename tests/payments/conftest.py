import pytest
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.signature import HmacSignatureVerifier


@pytest.fixture(autouse=True)
def _ctx(payments_bed):
    with payments_bed.domain_context():
        yield


@pytest.fixture()
def fake_gateway():
    return FakeGateway(secret="test-gateway-secret")


@pytest.fixture()
def verifier(fake_gateway):
    return HmacSignatureVerifier(fake_gateway.secret)
