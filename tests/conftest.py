import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the Protean config overlay before any domain is initialized."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


# ---------------------------------------------------------------------------
# Domain test beds
# ---------------------------------------------------------------------------
@pytest.fixture(scope="session")
def storecredit_bed():
    from storecredit.domain import storecredit

    bed = DomainFixture(storecredit)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session")
def payments_bed():
    from payments.domain import payments

    bed = DomainFixture(payments)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(scope="session")
def checkout_bed():
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def run_around_tests(storecredit_bed, payments_bed, ordering_bed, checkout_bed):
    """Clean every domain's stores after each test.

    Checkout spans all four contexts, so all beds stay initialized for
    every test.
    """
    yield

    from payments.gateway import reset_gateway

    reset_gateway()
    for bed in (storecredit_bed, payments_bed, ordering_bed, checkout_bed):
        with bed.domain_context():
            from protean import current_domain

            for _, provider in current_domain.providers.items():
                provider._data_reset()
            current_domain.event_store.store._data_reset()
