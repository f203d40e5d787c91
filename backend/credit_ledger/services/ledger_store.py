"""Ledger store — the only code that writes credit packs and ledger transactions.

Every balance-affecting change runs inside :func:`atomic` and inserts its
ledger transaction in the same unit of work as the pack change. Pack
balances are only ever moved by conditional UPDATE statements so that a
concurrent writer can never drive ``credits_remaining`` below zero.
"""

import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from credit_ledger.models.credit_pack import CreditPack
from credit_ledger.models.ledger_transaction import LedgerTransaction
from credit_ledger.models.user import User
from credit_ledger.services.balance import DebitPlanItem, get_balance, spendable_filter
from credit_ledger.services.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit the session's transaction if the block succeeds, roll back otherwise.

    Rolls back on any exception, including cancellation, so no partial
    write is ever committed. Storage failures and timeouts surface as
    :class:`StorageUnavailableError`.
    """
    try:
        yield db
        db.commit()
    except (OperationalError, PoolTimeoutError) as exc:
        db.rollback()
        logger.warning("Ledger storage unavailable: %s", exc)
        raise StorageUnavailableError(str(exc)) from exc
    except DBAPIError as exc:
        db.rollback()
        if exc.connection_invalidated:
            logger.warning("Ledger storage connection lost: %s", exc)
            raise StorageUnavailableError(str(exc)) from exc
        raise
    except BaseException:
        db.rollback()
        raise


def _is_source_reference_violation(exc: IntegrityError) -> bool:
    return "source_reference" in str(exc.orig)


# ---------------------------------------------------------------------------
# Reads under lock
# ---------------------------------------------------------------------------


def lock_user(db: Session, user_id: uuid.UUID) -> User:
    """Take the per-user row lock that serializes balance-affecting writes."""
    user = db.execute(
        select(User).where(User.id == user_id).with_for_update()
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def load_spendable_packs(db: Session, user_id: uuid.UUID, now: datetime) -> Sequence[CreditPack]:
    """Active, unexpired packs with credits left, locked for the current unit."""
    return (
        db.execute(
            select(CreditPack)
            .where(*spendable_filter(user_id, now), CreditPack.credits_remaining > 0)
            .order_by(CreditPack.expires_at.asc().nulls_last(), CreditPack.issued_at.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )


def find_pack_by_reference(db: Session, source_reference: str) -> CreditPack | None:
    return db.execute(
        select(CreditPack).where(CreditPack.source_reference == source_reference)
    ).scalar_one_or_none()


# ---------------------------------------------------------------------------
# Multi-row writes
# ---------------------------------------------------------------------------


def insert_pack_with_transaction(
    db: Session,
    *,
    user_id: uuid.UUID,
    amount: int,
    source_reference: str,
    source: str,
    kind: str,
    description: str,
    expires_at: datetime | None = None,
    amount_paid: int | None = None,
    currency: str | None = None,
    reference_id: str | None = None,
) -> tuple[CreditPack, LedgerTransaction]:
    """Insert a new pack and the positive transaction that grants it.

    The unique index on ``source_reference`` is the idempotency check: a
    duplicate raises :class:`ConflictError` at flush time.
    """
    pack = CreditPack(
        id=uuid.uuid4(),
        user_id=user_id,
        credits_granted=amount,
        credits_remaining=amount,
        source_reference=source_reference,
        source=source,
        amount_paid=amount_paid,
        currency=currency,
        status="active",
        expires_at=expires_at,
    )
    transaction = LedgerTransaction(
        user_id=user_id,
        pack=pack,
        amount=amount,
        kind=kind,
        reference_id=reference_id or source_reference,
        description=description,
    )
    db.add_all([pack, transaction])
    try:
        db.flush()
    except IntegrityError as exc:
        if _is_source_reference_violation(exc):
            raise ConflictError(source_reference) from exc
        raise
    return pack, transaction


def apply_debits(
    db: Session,
    user_id: uuid.UUID,
    plan: Sequence[DebitPlanItem],
    *,
    kind: str,
    description: str,
    reference_id: str | None = None,
) -> list[LedgerTransaction]:
    """Decrement each planned pack and record one negative transaction per pack.

    Each decrement only applies while the pack is still active and holds at
    least the planned amount. If a concurrent writer got there first the
    whole unit is aborted with :class:`InsufficientBalanceError`.
    """
    transactions: list[LedgerTransaction] = []
    for item in plan:
        result = db.execute(
            update(CreditPack)
            .where(
                CreditPack.id == item.pack_id,
                CreditPack.status == "active",
                CreditPack.credits_remaining >= item.debit_amount,
            )
            .values(credits_remaining=CreditPack.credits_remaining - item.debit_amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            required = sum(i.debit_amount for i in plan)
            raise InsufficientBalanceError(required=required, available=get_balance(db, user_id))

        transaction = LedgerTransaction(
            user_id=user_id,
            pack_id=item.pack_id,
            amount=-item.debit_amount,
            kind=kind,
            reference_id=reference_id,
            description=description,
        )
        db.add(transaction)
        transactions.append(transaction)

    db.flush()
    return transactions


class PackAlreadyClosed(Exception):
    """Another writer changed or closed the pack before this one could."""

    def __init__(self, pack_id: uuid.UUID) -> None:
        self.pack_id = pack_id
        super().__init__(f"Pack {pack_id} changed or was closed concurrently")


def close_pack(
    db: Session,
    pack: CreditPack,
    *,
    status: str,
    kind: str,
    description: str,
) -> LedgerTransaction | None:
    """Flip an active pack to ``status`` and write off what was left in it.

    The flip is conditional on the pack still being active with the
    remaining amount observed by the caller, so repeated or concurrent calls
    close a pack at most once; the losers get :class:`PackAlreadyClosed`.
    Returns the write-off transaction, or None if the pack had nothing left.
    """
    remaining = pack.credits_remaining
    result = db.execute(
        update(CreditPack)
        .where(
            CreditPack.id == pack.id,
            CreditPack.status == "active",
            CreditPack.credits_remaining == remaining,
        )
        .values(status=status, credits_remaining=0)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise PackAlreadyClosed(pack.id)

    if remaining == 0:
        return None

    transaction = LedgerTransaction(
        user_id=pack.user_id,
        pack_id=pack.id,
        amount=-remaining,
        kind=kind,
        reference_id=pack.source_reference,
        description=description,
    )
    db.add(transaction)
    db.flush()
    return transaction
