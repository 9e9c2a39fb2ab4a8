"""Payments bounded context — hosted gateway orders and signature checks.

Registers orders with the hosted gateway, tracks each one as a
GatewayPayment record and only trusts a payment after its signature
verifies on the server.
"""

import structlog
from protean.domain import Domain

payments = Domain(name="payments")

logger = structlog.get_logger(__name__)
