import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from credit_ledger.schemas.credits import LedgerTransactionResponse

# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------


class CreditAdjustmentRequest(BaseModel):
    amount: int
    reason: str | None = Field(default=None, max_length=500)


class CreditAdjustmentResponse(BaseModel):
    user_id: uuid.UUID
    previous_balance: int
    new_balance: int
    transactions: list[LedgerTransactionResponse]
    audit_entry_id: uuid.UUID


# ---------------------------------------------------------------------------
# Revocation and expiry
# ---------------------------------------------------------------------------


class PackRevokeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PackRevokeResponse(BaseModel):
    pack_id: uuid.UUID
    status: str
    credits_written_off: int


class ExpireResponse(BaseModel):
    expired: int


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    actor_id: uuid.UUID
    action: str
    target_user_id: uuid.UUID | None
    details: dict[str, Any]
    created_at: datetime
