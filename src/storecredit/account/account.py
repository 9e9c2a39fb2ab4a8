"""StoreCreditAccount aggregate (CQRS) — a user's balance and its ledger.

One account per user, keyed by ``user_id``. Every mutation appends exactly
one ``CreditTransaction`` and moves ``balance`` inside the same aggregate
write, so the log and the balance can never diverge mid-flight. The log is
the audit source of truth: ``balance == sum(t.amount for t in transactions)``
where debits carry a negative amount.

Amounts are integer minor units.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from storecredit.account.events import CreditAdded, CreditDeducted, StoreCreditAccountOpened
from storecredit.domain import storecredit
from storecredit.errors import InsufficientFundsError, LedgerInconsistencyError


class TransactionType(Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    REFUND = "refund"
    RETURN = "return"


# Types that increase the balance
CREDIT_TYPES = {TransactionType.CREDIT, TransactionType.REFUND, TransactionType.RETURN}


@storecredit.entity(part_of="StoreCreditAccount")
class CreditTransaction:
    """Immutable ledger entry. ``amount`` is signed."""

    amount = Integer(required=True)
    transaction_type = String(required=True, choices=TransactionType)
    order_ref = String(max_length=255)
    description = String(max_length=500)
    balance_before = Integer(required=True)
    balance_after = Integer(required=True)
    created_at = DateTime(required=True)


@storecredit.aggregate
class StoreCreditAccount:
    user_id = Identifier(identifier=True, required=True)
    balance = Integer(default=0, min_value=0)
    transactions = HasMany(CreditTransaction)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, user_id: str):
        now = datetime.now(UTC)
        account = cls(user_id=user_id, balance=0, created_at=now, updated_at=now)
        account.raise_(StoreCreditAccountOpened(user_id=user_id, opened_at=now))
        return account

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def credit(
        self,
        amount: int,
        description: str | None = None,
        order_ref: str | None = None,
        transaction_type: str = TransactionType.CREDIT.value,
    ) -> CreditTransaction:
        """Add credit, a refund or a return to the balance."""
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Credit amount must be greater than zero"]})
        kind = TransactionType(transaction_type)
        if kind not in CREDIT_TYPES:
            raise ValidationError({"transaction_type": [f"'{transaction_type}' cannot increase a balance"]})

        entry = self._append(amount, kind, description, order_ref)
        self.raise_(
            CreditAdded(
                user_id=str(self.user_id),
                transaction_id=str(entry.id),
                transaction_type=kind.value,
                amount=amount,
                balance_before=entry.balance_before,
                balance_after=entry.balance_after,
                order_ref=order_ref,
                description=description,
                added_at=entry.created_at,
            )
        )
        return entry

    def debit(self, amount: int, description: str | None = None, order_ref: str | None = None) -> CreditTransaction:
        """Spend credit. Rejected, never clamped, when the balance is short."""
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Debit amount must be greater than zero"]})
        if amount > self.balance:
            raise InsufficientFundsError(str(self.user_id), amount, self.balance)

        entry = self._append(-amount, TransactionType.DEBIT, description, order_ref)
        self.raise_(
            CreditDeducted(
                user_id=str(self.user_id),
                transaction_id=str(entry.id),
                amount=amount,
                balance_before=entry.balance_before,
                balance_after=entry.balance_after,
                order_ref=order_ref,
                description=description,
                deducted_at=entry.created_at,
            )
        )
        return entry

    def _append(self, signed_amount, kind, description, order_ref) -> CreditTransaction:
        now = datetime.now(UTC)
        balance_before = self.balance or 0
        entry = CreditTransaction(
            amount=signed_amount,
            transaction_type=kind.value,
            order_ref=order_ref,
            description=description,
            balance_before=balance_before,
            balance_after=balance_before + signed_amount,
            created_at=now,
        )
        with atomic_change(self):
            self.add_transactions(entry)
            self.balance = entry.balance_after
            self.updated_at = now
        return entry

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def derived_balance(self) -> int:
        return sum(t.amount for t in (self.transactions or []))

    def assert_consistent(self) -> None:
        derived = self.derived_balance()
        if derived != self.balance:
            raise LedgerInconsistencyError(str(self.user_id), self.balance, derived)

    def history(self, limit: int | None = None) -> list[CreditTransaction]:
        """Transactions newest first."""
        ordered = sorted(self.transactions or [], key=lambda t: t.created_at, reverse=True)
        return ordered[:limit] if limit else ordered
