import pytest
from shared.config import Settings


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture()
def service_settings():
    return Settings(service_role_key="test-service-key")
