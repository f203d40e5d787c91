import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

LedgerTransactionKind = Literal[
    "purchase_grant",
    "spend",
    "admin_adjustment",
    "refund_reversal",
    "expiration_writeoff",
]
CreditPackStatus = Literal["active", "expired", "revoked"]


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------


class ExpiringCredits(BaseModel):
    credits: int
    expires_at: datetime


class CreditBalanceResponse(BaseModel):
    user_id: uuid.UUID
    balance: int
    expiring: list[ExpiringCredits]


# ---------------------------------------------------------------------------
# Transaction history
# ---------------------------------------------------------------------------


class LedgerTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    pack_id: uuid.UUID | None
    amount: int
    kind: LedgerTransactionKind
    reference_id: str | None
    description: str | None
    created_at: datetime


class TransactionHistoryResponse(BaseModel):
    items: list[LedgerTransactionResponse]
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Packs
# ---------------------------------------------------------------------------


class CreditPackResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    credits_granted: int
    credits_remaining: int
    source: str
    source_reference: str
    status: CreditPackStatus
    amount_paid: int | None
    currency: str | None
    issued_at: datetime
    expires_at: datetime | None
