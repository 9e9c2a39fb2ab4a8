"""Pydantic request/response schemas for the Store Credit API."""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class AddCreditRequest(BaseModel):
    amount: int = Field(gt=0)
    description: str | None = None
    order_ref: str | None = None
    transaction_type: str = "credit"

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "amount": 50000,
                    "description": "Goodwill credit",
                    "transaction_type": "credit",
                }
            ]
        }
    }


class DeductCreditRequest(BaseModel):
    amount: int = Field(gt=0)
    description: str | None = None
    order_ref: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class LedgerResultResponse(BaseModel):
    success: bool
    balance_after: int | None = None
    error: str | None = None


class BalanceResponse(BaseModel):
    user_id: str
    balance: int
    transaction_count: int = 0


class TransactionResponse(BaseModel):
    id: str
    amount: int
    transaction_type: str
    order_ref: str | None = None
    description: str | None = None
    balance_before: int
    balance_after: int
    created_at: datetime


class HistoryResponse(BaseModel):
    user_id: str
    transactions: list[TransactionResponse]
