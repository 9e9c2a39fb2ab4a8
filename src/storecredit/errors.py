"""Ledger-level failures.

Both derive from Protean's ``ValidationError`` so they surface like any other
aggregate rule violation, while still being distinguishable by type.
"""

from protean.exceptions import ValidationError


class InsufficientFundsError(ValidationError):
    def __init__(self, user_id: str, requested: int, available: int) -> None:
        self.user_id = user_id
        self.requested = requested
        self.available = available
        super().__init__({"amount": [f"Insufficient store credit: requested {requested}, available {available}"]})


class LedgerInconsistencyError(ValidationError):
    def __init__(self, user_id: str, recorded: int, derived: int) -> None:
        self.user_id = user_id
        self.recorded = recorded
        self.derived = derived
        super().__init__(
            {"balance": [f"Recorded balance {recorded} does not match transaction log total {derived}"]}
        )
