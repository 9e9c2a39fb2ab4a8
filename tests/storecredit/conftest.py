import pytest


@pytest.fixture(autouse=True)
def _ctx(storecredit_bed):
    with storecredit_bed.domain_context():
        yield
