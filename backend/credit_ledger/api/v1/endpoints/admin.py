"""Admin API — manual credit adjustments, pack revocation, expiry, and audit log."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from credit_ledger.core.auth import get_admin_user
from credit_ledger.core.database import get_db
from credit_ledger.models.credit_pack import CreditPack
from credit_ledger.models.user import User
from credit_ledger.schemas.admin import (
    AuditEntryResponse,
    CreditAdjustmentRequest,
    CreditAdjustmentResponse,
    ExpireResponse,
    PackRevokeRequest,
    PackRevokeResponse,
)
from credit_ledger.services.audit import list_audit_entries
from credit_ledger.services.credits import adjust, expire_stale_packs, revoke_pack
from credit_ledger.services.exceptions import (
    BalanceOutOfRangeError,
    InsufficientBalanceError,
    LedgerError,
    LedgerValidationError,
    NotFoundError,
    StorageUnavailableError,
)

router = APIRouter()


def _http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (BalanceOutOfRangeError, InsufficientBalanceError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, StorageUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, LedgerValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------


@router.post(
    "/users/{user_id}/credits",
    response_model=CreditAdjustmentResponse,
    status_code=201,
)
def admin_adjust_credits(
    user_id: uuid.UUID,
    payload: CreditAdjustmentRequest,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    """Add (positive amount) or deduct (negative amount) credits for a user."""
    try:
        result = adjust(db, admin.id, user_id, payload.amount, payload.reason)
    except LedgerError as exc:
        raise _http_error(exc)

    return CreditAdjustmentResponse(
        user_id=user_id,
        previous_balance=result.previous_balance,
        new_balance=result.new_balance,
        transactions=result.transactions,
        audit_entry_id=result.audit_entry.id,
    )


# ---------------------------------------------------------------------------
# Revocation and expiry
# ---------------------------------------------------------------------------


@router.post("/packs/{pack_id}/revoke", response_model=PackRevokeResponse)
def admin_revoke_pack(
    pack_id: uuid.UUID,
    payload: PackRevokeRequest,
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    try:
        transaction = revoke_pack(db, admin.id, pack_id, payload.reason)
    except LedgerError as exc:
        raise _http_error(exc)

    pack = db.get(CreditPack, pack_id)
    return PackRevokeResponse(
        pack_id=pack_id,
        status=pack.status,
        credits_written_off=-transaction.amount if transaction else 0,
    )


@router.post("/credits/expire", response_model=ExpireResponse)
def admin_expire_credits(
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    """Run the expiry sweep now instead of waiting for the background loop."""
    try:
        expired = expire_stale_packs(db, actor_id=admin.id)
    except LedgerError as exc:
        raise _http_error(exc)
    return ExpireResponse(expired=expired)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


@router.get("/audit-logs", response_model=list[AuditEntryResponse])
def admin_audit_logs(
    user_id: uuid.UUID | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
):
    return list_audit_entries(db, target_user_id=user_id, limit=limit)
