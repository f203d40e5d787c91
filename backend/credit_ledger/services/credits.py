"""Credit service — grants, spends, admin adjustments, refunds, and expiry.

Every operation that moves credits runs as one unit of work through
:func:`credit_ledger.services.ledger_store.atomic`. Validation happens before
any write; storage failures propagate as ``StorageUnavailableError``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from credit_ledger.core.config import settings
from credit_ledger.core.database import to_naive_utc, utcnow
from credit_ledger.models.audit_entry import AuditEntry
from credit_ledger.models.credit_pack import CreditPack
from credit_ledger.models.ledger_transaction import LedgerTransaction
from credit_ledger.services.audit import record_admin_action
from credit_ledger.services.balance import get_balance, select_debit_plan
from credit_ledger.services.exceptions import (
    BalanceOutOfRangeError,
    ConflictError,
    InvalidAmountError,
    LedgerValidationError,
    NotFoundError,
)
from credit_ledger.services.ledger_store import (
    PackAlreadyClosed,
    apply_debits,
    atomic,
    close_pack,
    find_pack_by_reference,
    insert_pack_with_transaction,
    load_spendable_packs,
    lock_user,
)

logger = logging.getLogger(__name__)


@dataclass
class AdjustmentResult:
    """Outcome of an admin adjustment: one transaction per pack touched."""

    transactions: list[LedgerTransaction]
    audit_entry: AuditEntry
    previous_balance: int
    new_balance: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_positive(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount, "must be a positive integer")
    return amount


def _grant_once(db: Session, user_id: uuid.UUID, source_reference: str, **fields) -> tuple[CreditPack, bool]:
    """Insert a pack unless ``source_reference`` is already recorded.

    Returns the pack and whether this call created it. The duplicate check
    is the unique index, so two concurrent calls can't both create a pack.
    """
    try:
        with atomic(db):
            lock_user(db, user_id)
            pack, _ = insert_pack_with_transaction(
                db, user_id=user_id, source_reference=source_reference, **fields
            )
    except ConflictError:
        existing = find_pack_by_reference(db, source_reference)
        if existing is None:
            raise
        if existing.user_id != user_id:
            logger.warning(
                "Source reference %s already granted to user %s, not %s",
                source_reference,
                existing.user_id,
                user_id,
            )
        return existing, False

    return pack, True


# ---------------------------------------------------------------------------
# Grants
# ---------------------------------------------------------------------------


def grant_from_payment(
    db: Session,
    user_id: uuid.UUID,
    amount: int,
    source_reference: str,
    expires_at: datetime | None = None,
    *,
    source: str = "stripe",
    amount_paid: int | None = None,
    currency: str | None = None,
) -> CreditPack:
    """Grant a credit pack for a confirmed payment, at most once per reference.

    Calling again with a reference that is already recorded returns the
    existing pack unchanged.
    """
    pack, _ = record_payment_grant(
        db,
        user_id,
        amount,
        source_reference,
        expires_at,
        source=source,
        amount_paid=amount_paid,
        currency=currency,
    )
    return pack


def record_payment_grant(
    db: Session,
    user_id: uuid.UUID,
    amount: int,
    source_reference: str,
    expires_at: datetime | None = None,
    *,
    source: str = "stripe",
    amount_paid: int | None = None,
    currency: str | None = None,
) -> tuple[CreditPack, bool]:
    """Like :func:`grant_from_payment`, also reporting whether this call created the pack."""
    _require_positive(amount)
    if not source_reference:
        raise LedgerValidationError("source_reference is required")

    pack, created = _grant_once(
        db,
        user_id,
        source_reference,
        amount=amount,
        source=source,
        kind="purchase_grant",
        description=f"Credit purchase via {source}: {amount} credits",
        expires_at=to_naive_utc(expires_at) if expires_at else None,
        amount_paid=amount_paid,
        currency=currency.lower() if currency else None,
    )

    if created:
        logger.info("Granted %d credits to user %s (reference %s)", amount, user_id, source_reference)
    else:
        logger.info("Payment %s already granted as pack %s", source_reference, pack.id)
    return pack, created


def refund_spend(
    db: Session,
    user_id: uuid.UUID,
    reference_id: str,
    reason: str | None = None,
) -> CreditPack | None:
    """Give back the credits spent under ``reference_id`` as a new pack.

    Used when the metered action that was paid for failed. The refund pack
    expires with the latest-expiring pack the credits came from, so expired
    credits don't come back to life. Idempotent per reference. Returns None
    when nothing was spent under the reference.
    """
    spends = (
        db.execute(
            select(LedgerTransaction).where(
                LedgerTransaction.user_id == user_id,
                LedgerTransaction.kind == "spend",
                LedgerTransaction.reference_id == reference_id,
            )
        )
        .scalars()
        .all()
    )
    if not spends:
        return None

    amount = -sum(t.amount for t in spends)
    pack_ids = list({t.pack_id for t in spends})
    expiries = (
        db.execute(select(CreditPack.expires_at).where(CreditPack.id.in_(pack_ids))).scalars().all()
    )
    expires_at = None if any(e is None for e in expiries) else max(expiries)

    pack, created = _grant_once(
        db,
        user_id,
        f"refund:{user_id}:{reference_id}",
        amount=amount,
        source="refund",
        kind="refund_reversal",
        description=reason or f"Refund for failed operation ({reference_id})",
        expires_at=expires_at,
        reference_id=reference_id,
    )

    if created:
        logger.info("Refunded %d credits to user %s (reference %s)", amount, user_id, reference_id)
    return pack


# ---------------------------------------------------------------------------
# Spending
# ---------------------------------------------------------------------------


def spend(
    db: Session,
    user_id: uuid.UUID,
    amount: int,
    reason: str,
    reference_id: str | None = None,
) -> list[LedgerTransaction]:
    """Debit ``amount`` credits, soonest-expiring packs first.

    The balance check and the debit run in the same unit of work under the
    user's lock: either every planned pack is decremented or nothing is.
    Returns one ``spend`` transaction per pack touched.
    """
    _require_positive(amount)
    now = utcnow()

    with atomic(db):
        lock_user(db, user_id)
        packs = load_spendable_packs(db, user_id, now)
        plan = select_debit_plan(packs, amount, now)
        transactions = apply_debits(
            db,
            user_id,
            plan,
            kind="spend",
            description=reason,
            reference_id=reference_id,
        )

    logger.info(
        "User %s spent %d credits on %s across %d pack(s)", user_id, amount, reason, len(transactions)
    )
    return transactions


def spend_for_plan(db: Session, user_id: uuid.UUID, plan_id: str) -> list[LedgerTransaction]:
    """Charge the plan-generation cost. Undo with ``refund_spend(db, user_id, plan_id)``."""
    return spend(db, user_id, settings.CREDITS_PER_PLAN, "plan_generation", reference_id=plan_id)


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------


def adjust(
    db: Session,
    actor_id: uuid.UUID,
    user_id: uuid.UUID,
    amount: int,
    reason: str | None,
) -> AdjustmentResult:
    """Manually add or deduct credits on behalf of an admin.

    Additions create a non-expiring pack. Deductions debit packs in the same
    order as :func:`spend` and need a reason. Both write one audit entry in
    the same unit of work.

    Raises:
        InvalidAmountError: zero, non-integer, or outside the per-call limits.
        LedgerValidationError: deduction without a reason.
        BalanceOutOfRangeError: resulting balance below 0 or above the ceiling.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
        raise InvalidAmountError(amount, "must be a non-zero integer")
    if not settings.CREDIT_ADJUSTMENT_MIN <= amount <= settings.CREDIT_ADJUSTMENT_MAX:
        raise InvalidAmountError(
            amount,
            f"must be between {settings.CREDIT_ADJUSTMENT_MIN} and {settings.CREDIT_ADJUSTMENT_MAX}",
        )
    reason = (reason or "").strip()
    if amount < 0 and not reason:
        raise LedgerValidationError("A reason is required for credit deductions")

    now = utcnow()
    with atomic(db):
        lock_user(db, user_id)
        previous = get_balance(db, user_id, now)
        new_balance = previous + amount
        if not 0 <= new_balance <= settings.CREDIT_MAX_BALANCE:
            raise BalanceOutOfRangeError(
                current=previous,
                adjustment=amount,
                minimum=0,
                maximum=settings.CREDIT_MAX_BALANCE,
            )

        if amount > 0:
            _, transaction = insert_pack_with_transaction(
                db,
                user_id=user_id,
                amount=amount,
                source_reference=f"admin:{uuid.uuid4()}",
                source="admin",
                kind="admin_adjustment",
                description=reason or "Manual credit addition by admin",
            )
            transactions = [transaction]
            action = "ADD_CREDITS"
        else:
            plan = select_debit_plan(load_spendable_packs(db, user_id, now), -amount, now)
            transactions = apply_debits(
                db,
                user_id,
                plan,
                kind="admin_adjustment",
                description=reason,
                reference_id=f"admin_deduction:{uuid.uuid4()}",
            )
            action = "DEDUCT_CREDITS"

        entry = record_admin_action(
            db,
            actor_id,
            action,
            target_user_id=user_id,
            details={
                "amount": amount,
                "reason": reason or None,
                "previous_balance": previous,
                "new_balance": new_balance,
                "transaction_ids": [str(t.id) for t in transactions],
            },
        )

    logger.info(
        "Admin %s adjusted user %s by %d (balance %d -> %d)",
        actor_id,
        user_id,
        amount,
        previous,
        new_balance,
    )
    return AdjustmentResult(
        transactions=transactions,
        audit_entry=entry,
        previous_balance=previous,
        new_balance=new_balance,
    )


def revoke_pack(
    db: Session,
    actor_id: uuid.UUID,
    pack_id: uuid.UUID,
    reason: str,
) -> LedgerTransaction | None:
    """Revoke an active pack, writing off its remaining credits.

    Returns the write-off transaction, or None if the pack was already
    closed or empty.
    """
    reason = (reason or "").strip()
    if not reason:
        raise LedgerValidationError("A reason is required to revoke a credit pack")

    owner_id = db.execute(select(CreditPack.user_id).where(CreditPack.id == pack_id)).scalar_one_or_none()
    if owner_id is None:
        raise NotFoundError("CreditPack", pack_id)

    with atomic(db):
        lock_user(db, owner_id)
        pack = db.execute(
            select(CreditPack)
            .where(CreditPack.id == pack_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        if pack.status != "active":
            return None

        remaining = pack.credits_remaining
        try:
            transaction = close_pack(db, pack, status="revoked", kind="admin_adjustment", description=reason)
        except PackAlreadyClosed:
            return None

        record_admin_action(
            db,
            actor_id,
            "REVOKE_PACK",
            target_user_id=owner_id,
            details={
                "pack_id": str(pack_id),
                "source_reference": pack.source_reference,
                "credits_written_off": remaining,
                "reason": reason,
            },
        )

    logger.info("Admin %s revoked pack %s (%d credits written off)", actor_id, pack_id, remaining)
    return transaction


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


def expire_stale_packs(
    db: Session,
    now: datetime | None = None,
    actor_id: uuid.UUID | None = None,
) -> int:
    """Expire active packs whose ``expires_at`` has passed and write off their credits.

    Safe to run repeatedly and concurrently: each pack is closed by a
    conditional update, so it is written off at most once. Packs currently
    locked by a spend are skipped and picked up by the next run.

    When ``actor_id`` is given the run was triggered by an admin, and its
    audit entry commits in the same unit as the write-offs.

    Returns the number of packs expired by this call.
    """
    current = utcnow() if now is None else to_naive_utc(now)
    expired = 0

    with atomic(db):
        stale = (
            db.execute(
                select(CreditPack)
                .where(
                    CreditPack.status == "active",
                    CreditPack.expires_at.is_not(None),
                    CreditPack.expires_at <= current,
                )
                .order_by(CreditPack.expires_at.asc())
                .with_for_update(skip_locked=True)
                .execution_options(populate_existing=True)
            )
            .scalars()
            .all()
        )
        for pack in stale:
            try:
                close_pack(
                    db,
                    pack,
                    status="expired",
                    kind="expiration_writeoff",
                    description=f"Unspent credits expired on {pack.expires_at:%Y-%m-%d}",
                )
            except PackAlreadyClosed:
                logger.debug("Pack %s closed concurrently, skipping", pack.id)
                continue
            expired += 1

        if actor_id is not None:
            record_admin_action(db, actor_id, "EXPIRE_STALE_PACKS", details={"expired": expired})

    if expired:
        logger.info("Expired %d credit pack(s)", expired)
    return expired


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_transaction_history(
    db: Session,
    user_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> list[LedgerTransaction]:
    """Return a user's ledger transactions, newest first."""
    return list(
        db.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.user_id == user_id)
            .order_by(LedgerTransaction.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        .scalars()
        .all()
    )


def list_packs(db: Session, user_id: uuid.UUID) -> list[CreditPack]:
    return list(
        db.execute(
            select(CreditPack)
            .where(CreditPack.user_id == user_id)
            .order_by(CreditPack.issued_at.desc())
        )
        .scalars()
        .all()
    )
