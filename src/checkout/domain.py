"""Checkout bounded context — payment orchestration.

Drives one checkout attempt from a priced cart to either a confirmed order
or a typed failure, splitting the total between store credit and the
chosen payment method and compensating any credit taken when the attempt
does not succeed.
"""

import structlog
from protean.domain import Domain

checkout = Domain(name="checkout")

logger = structlog.get_logger(__name__)
