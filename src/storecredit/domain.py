"""Store Credit bounded context — per-user balances and the credit ledger.

Owns the store-credit balance of every user together with an append-only
transaction log. Balance and log entry change in the same aggregate write,
so there is never a balance without its ledger row or the reverse.
"""

import structlog
from protean.domain import Domain

storecredit = Domain(name="storecredit")

logger = structlog.get_logger(__name__)
