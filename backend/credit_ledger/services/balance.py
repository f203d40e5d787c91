"""Balance engine — spendable balance and expiration-ordered debit planning."""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from credit_ledger.core.config import settings
from credit_ledger.core.database import to_naive_utc, utcnow
from credit_ledger.models.credit_pack import CreditPack
from credit_ledger.services.exceptions import InsufficientBalanceError, InvalidAmountError


@dataclass(frozen=True)
class DebitPlanItem:
    pack_id: uuid.UUID
    debit_amount: int


def _now(now: datetime | None) -> datetime:
    return utcnow() if now is None else to_naive_utc(now)


def spendable_filter(user_id: uuid.UUID, now: datetime) -> tuple:
    """WHERE clauses selecting a user's active, unexpired packs."""
    return (
        CreditPack.user_id == user_id,
        CreditPack.status == "active",
        or_(CreditPack.expires_at.is_(None), CreditPack.expires_at > now),
    )


def get_balance(db: Session, user_id: uuid.UUID, now: datetime | None = None) -> int:
    """Sum of remaining credits over the user's active, unexpired packs."""
    total = db.execute(
        select(func.coalesce(func.sum(CreditPack.credits_remaining), 0)).where(
            *spendable_filter(user_id, _now(now))
        )
    ).scalar_one()
    return int(total)


def has_sufficient_credits(
    db: Session,
    user_id: uuid.UUID,
    required: int | None = None,
    now: datetime | None = None,
) -> bool:
    """Advisory pre-check before starting paid work; defaults to one plan's cost.

    Reads without locking, so a concurrent spend can still win. ``spend``
    remains the authoritative check.
    """
    if required is None:
        required = settings.CREDITS_PER_PLAN
    return get_balance(db, user_id, now) >= required


def get_expiring_credits(
    db: Session, user_id: uuid.UUID, now: datetime | None = None
) -> list[tuple[int, datetime]]:
    """Remaining credits per expiring pack, soonest expiry first."""
    rows = db.execute(
        select(CreditPack.credits_remaining, CreditPack.expires_at)
        .where(
            *spendable_filter(user_id, _now(now)),
            CreditPack.expires_at.is_not(None),
            CreditPack.credits_remaining > 0,
        )
        .order_by(CreditPack.expires_at.asc())
    ).all()
    return [(remaining, expires_at) for remaining, expires_at in rows]


def debit_order_key(pack: CreditPack) -> tuple:
    """Soonest-to-expire first, never-expiring packs last, then oldest issued."""
    return (
        pack.expires_at is None,
        pack.expires_at or datetime.max,
        pack.issued_at or datetime.min,
    )


def select_debit_plan(
    packs: Iterable[CreditPack],
    amount: int,
    now: datetime | None = None,
) -> list[DebitPlanItem]:
    """Choose which packs cover ``amount`` and how much to take from each.

    Only active, unexpired packs with credits left are eligible. The plan is
    computed over whatever rows the caller loaded, so it must run inside the
    same unit of work as the debit itself.

    Raises:
        InvalidAmountError: ``amount`` is not a positive integer.
        InsufficientBalanceError: eligible packs hold less than ``amount``.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount, "must be a positive integer")

    current = _now(now)
    eligible = sorted((p for p in packs if p.is_spendable(current)), key=debit_order_key)

    available = sum(p.credits_remaining for p in eligible)
    if available < amount:
        raise InsufficientBalanceError(required=amount, available=available)

    plan: list[DebitPlanItem] = []
    outstanding = amount
    for pack in eligible:
        if outstanding == 0:
            break
        take = min(pack.credits_remaining, outstanding)
        plan.append(DebitPlanItem(pack_id=pack.id, debit_amount=take))
        outstanding -= take

    return plan
