"""Credit API — the signed-in user's balance, history, and packs."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from credit_ledger.core.auth import get_current_user
from credit_ledger.core.database import get_db
from credit_ledger.models.user import User
from credit_ledger.schemas.credits import (
    CreditBalanceResponse,
    CreditPackResponse,
    ExpiringCredits,
    TransactionHistoryResponse,
)
from credit_ledger.services.balance import get_balance, get_expiring_credits
from credit_ledger.services.credits import get_transaction_history, list_packs

router = APIRouter()


# ---------------------------------------------------------------------------
# Balance
# ---------------------------------------------------------------------------


@router.get("/balance", response_model=CreditBalanceResponse)
def get_credit_balance(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Spendable balance plus the credits due to expire, soonest first."""
    return CreditBalanceResponse(
        user_id=current_user.id,
        balance=get_balance(db, current_user.id),
        expiring=[
            ExpiringCredits(credits=credits, expires_at=expires_at)
            for credits, expires_at in get_expiring_credits(db, current_user.id)
        ],
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/transactions", response_model=TransactionHistoryResponse)
def get_credit_transactions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    transactions = get_transaction_history(db, current_user.id, limit=limit, offset=offset)
    return TransactionHistoryResponse(items=transactions, limit=limit, offset=offset)


# ---------------------------------------------------------------------------
# Packs
# ---------------------------------------------------------------------------


@router.get("/packs", response_model=list[CreditPackResponse])
def get_credit_packs(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_packs(db, current_user.id)
