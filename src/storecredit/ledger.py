"""CreditLedger — the only entry point other contexts use for store credit.

Wraps the AddCredit/DeductCredit commands with:

- per-user serialization, so two concurrent debits against one balance can
  never both succeed when together they exceed it;
- the RPC-shaped results (``LedgerResult``) used at the HTTP boundary;
- read helpers (balance, history, consistency check).

Different users never share a lock.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from storecredit.account.account import CreditTransaction, StoreCreditAccount, TransactionType
from storecredit.account.crediting import AddCredit
from storecredit.account.debiting import DeductCredit
from storecredit.domain import storecredit
from storecredit.errors import InsufficientFundsError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    transaction_id: str
    balance_after: int


@dataclass(frozen=True)
class LedgerResult:
    success: bool
    balance_after: int | None = None
    error: str | None = None


class UserLocks:
    """Mutex per user id, kept only while someone holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # user_id -> [lock, holders]

    @contextmanager
    def hold(self, user_id: str):
        with self._guard:
            entry = self._locks.setdefault(user_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)


class CreditLedger:
    def __init__(self, domain=storecredit, locks: UserLocks | None = None) -> None:
        self.domain = domain
        self.locks = locks or UserLocks()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_balance(self, user_id: str) -> int:
        account = self._find(user_id)
        return account.balance if account else 0

    def has_sufficient_credit(self, user_id: str, amount: int) -> bool:
        return self.get_balance(user_id) >= amount

    def transaction_history(self, user_id: str, limit: int = 50) -> list[CreditTransaction]:
        account = self._find(user_id)
        return account.history(limit) if account else []

    def entries_for_order(self, user_id: str, order_ref: str, transaction_type: str | None = None) -> list[CreditTransaction]:
        """Transactions tagged with ``order_ref``, optionally of one type."""
        account = self._find(user_id)
        if account is None:
            return []
        return [
            t
            for t in account.history()
            if t.order_ref == order_ref and (transaction_type is None or t.transaction_type == transaction_type)
        ]

    def account_summary(self, user_id: str) -> dict | None:
        account = self._find(user_id)
        if account is None:
            return None
        return {
            "user_id": str(account.user_id),
            "balance": account.balance,
            "transaction_count": len(account.transactions or []),
            "created_at": account.created_at,
            "updated_at": account.updated_at,
        }

    def verify_consistency(self, user_id: str) -> int:
        """Recompute the balance from the log. Returns it when consistent."""
        account = self._find(user_id)
        if account is None:
            return 0
        account.assert_consistent()
        return account.balance

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def credit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        order_ref: str | None = None,
        transaction_type: str = TransactionType.CREDIT.value,
    ) -> LedgerEntry:
        with self.locks.hold(user_id), self.domain.domain_context():
            result = self.domain.process(
                AddCredit(
                    user_id=user_id,
                    amount=amount,
                    description=reason,
                    order_ref=order_ref,
                    transaction_type=transaction_type,
                ),
                asynchronous=False,
            )
        logger.info(
            "Store credit added",
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            order_ref=order_ref,
            balance_after=result["balance_after"],
        )
        return LedgerEntry(**result)

    def debit(self, user_id: str, amount: int, reason: str, order_ref: str | None = None) -> LedgerEntry:
        with self.locks.hold(user_id), self.domain.domain_context():
            try:
                result = self.domain.process(
                    DeductCredit(
                        user_id=user_id,
                        amount=amount,
                        description=reason,
                        order_ref=order_ref,
                    ),
                    asynchronous=False,
                )
            except InsufficientFundsError as exc:
                logger.warning(
                    "Store credit debit rejected",
                    user_id=user_id,
                    requested=exc.requested,
                    available=exc.available,
                    order_ref=order_ref,
                )
                raise
        logger.info(
            "Store credit deducted",
            user_id=user_id,
            amount=amount,
            order_ref=order_ref,
            balance_after=result["balance_after"],
        )
        return LedgerEntry(**result)

    # -------------------------------------------------------------------
    # RPC-shaped entry points
    # -------------------------------------------------------------------
    def add_credit(
        self,
        user_id: str,
        amount: int,
        description: str | None = None,
        order_ref: str | None = None,
        transaction_type: str = TransactionType.CREDIT.value,
    ) -> LedgerResult:
        try:
            entry = self.credit(user_id, amount, description, order_ref, transaction_type)
        except ValidationError as exc:
            return LedgerResult(success=False, error=_first_message(exc))
        return LedgerResult(success=True, balance_after=entry.balance_after)

    def deduct_credit(
        self,
        user_id: str,
        amount: int,
        description: str | None = None,
        order_ref: str | None = None,
    ) -> LedgerResult:
        try:
            entry = self.debit(user_id, amount, description, order_ref)
        except ValidationError as exc:
            return LedgerResult(success=False, error=_first_message(exc))
        return LedgerResult(success=True, balance_after=entry.balance_after)

    def _find(self, user_id: str) -> StoreCreditAccount | None:
        with self.domain.domain_context():
            try:
                return self.domain.repository_for(StoreCreditAccount).get(user_id)
            except ObjectNotFoundError:
                return None


def _first_message(exc: ValidationError) -> str:
    for messages in exc.messages.values():
        if messages:
            return messages[0]
    return str(exc)
