"""FastAPI routes for the Store Credit domain."""

from fastapi import APIRouter, Query

from storecredit.api.schemas import (
    AddCreditRequest,
    BalanceResponse,
    DeductCreditRequest,
    HistoryResponse,
    LedgerResultResponse,
    TransactionResponse,
)
from storecredit.ledger import CreditLedger

ledger = CreditLedger()

# ---------------------------------------------------------------------------
# Store Credit Router
# ---------------------------------------------------------------------------
store_credit_router = APIRouter(prefix="/store-credit", tags=["store-credit"])


@store_credit_router.get("/{user_id}", response_model=BalanceResponse)
async def get_balance(user_id: str) -> BalanceResponse:
    """Current balance. Users without an account have a zero balance."""
    summary = ledger.account_summary(user_id)
    if summary is None:
        return BalanceResponse(user_id=user_id, balance=0)
    return BalanceResponse(
        user_id=user_id,
        balance=summary["balance"],
        transaction_count=summary["transaction_count"],
    )


@store_credit_router.get("/{user_id}/transactions", response_model=HistoryResponse)
async def transaction_history(user_id: str, limit: int = Query(default=50, ge=1, le=500)) -> HistoryResponse:
    """Ledger entries, newest first."""
    entries = ledger.transaction_history(user_id, limit=limit)
    return HistoryResponse(
        user_id=user_id,
        transactions=[
            TransactionResponse(
                id=str(t.id),
                amount=t.amount,
                transaction_type=t.transaction_type,
                order_ref=t.order_ref,
                description=t.description,
                balance_before=t.balance_before,
                balance_after=t.balance_after,
                created_at=t.created_at,
            )
            for t in entries
        ],
    )


@store_credit_router.post("/{user_id}/credits", response_model=LedgerResultResponse)
async def add_credit(user_id: str, body: AddCreditRequest) -> LedgerResultResponse:
    """Add credit, a refund or a return to a user's balance."""
    result = ledger.add_credit(
        user_id,
        body.amount,
        description=body.description,
        order_ref=body.order_ref,
        transaction_type=body.transaction_type,
    )
    return LedgerResultResponse(success=result.success, balance_after=result.balance_after, error=result.error)


@store_credit_router.post("/{user_id}/debits", response_model=LedgerResultResponse)
async def deduct_credit(user_id: str, body: DeductCreditRequest) -> LedgerResultResponse:
    """Spend credit. An insufficient balance is reported in the body."""
    result = ledger.deduct_credit(
        user_id,
        body.amount,
        description=body.description,
        order_ref=body.order_ref,
    )
    return LedgerResultResponse(success=result.success, balance_after=result.balance_after, error=result.error)
