from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from credit_ledger.core.database import Base, utcnow
from credit_ledger.models import AuditEntry, CreditPack, LedgerTransaction, User

EXPECTED_TABLES = {
    "users",
    "credit_packs",
    "ledger_transactions",
    "audit_entries",
}


def test_all_tables_registered():
    registered = set(Base.metadata.tables.keys())
    assert EXPECTED_TABLES.issubset(registered), (
        f"Missing tables: {EXPECTED_TABLES - registered}"
    )


def test_user_columns():
    cols = {c.name for c in User.__table__.columns}
    assert cols == {"id", "email", "is_active", "is_admin", "created_at"}


def test_credit_pack_columns():
    cols = {c.name for c in CreditPack.__table__.columns}
    assert cols == {
        "id", "user_id", "credits_granted", "credits_remaining",
        "source_reference", "source", "amount_paid", "currency", "status",
        "issued_at", "expires_at",
    }


def test_ledger_transaction_columns():
    cols = {c.name for c in LedgerTransaction.__table__.columns}
    assert cols == {
        "id", "user_id", "pack_id", "amount", "kind", "reference_id",
        "description", "created_at",
    }


def test_audit_entry_columns():
    cols = {c.name for c in AuditEntry.__table__.columns}
    assert cols == {"id", "actor_id", "action", "target_user_id", "details", "created_at"}


def test_source_reference_index_is_unique():
    indexes = {ix.name: ix for ix in CreditPack.__table__.indexes}
    assert indexes["uq_credit_packs_source_reference"].unique is True


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------


class TestCreditPackConstraints:
    def test_duplicate_source_reference_rejected(self, db, user, pack_factory):
        pack = pack_factory(user, 10)
        db.add(
            CreditPack(
                user_id=user.id,
                credits_granted=5,
                credits_remaining=5,
                source_reference=pack.source_reference,
                source="stripe",
            )
        )
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_negative_remaining_rejected(self, db, user):
        db.add(
            CreditPack(
                user_id=user.id,
                credits_granted=5,
                credits_remaining=-1,
                source_reference="neg",
                source="admin",
            )
        )
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_remaining_above_granted_rejected(self, db, user):
        db.add(
            CreditPack(
                user_id=user.id,
                credits_granted=5,
                credits_remaining=6,
                source_reference="over",
                source="admin",
            )
        )
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_defaults(self, db, user, pack_factory):
        pack = pack_factory(user, 10)
        assert pack.status == "active"
        assert pack.issued_at is not None
        assert pack.expires_at is None


class TestIsSpendable:
    def test_active_unexpired_pack(self, user, pack_factory):
        pack = pack_factory(user, 10, timedelta(days=1))
        assert pack.is_spendable(utcnow()) is True

    def test_expired_by_time(self, user, pack_factory):
        pack = pack_factory(user, 10, timedelta(seconds=-1))
        assert pack.is_spendable(utcnow()) is False

    def test_empty_pack(self, user, pack_factory):
        pack = pack_factory(user, 10, remaining=0)
        assert pack.is_spendable(utcnow()) is False

    def test_revoked_pack(self, user, pack_factory):
        pack = pack_factory(user, 10, status="revoked")
        assert pack.is_spendable(utcnow()) is False

    def test_never_expiring_pack(self, user, pack_factory):
        pack = pack_factory(user, 10)
        assert pack.is_spendable(utcnow() + timedelta(days=3650)) is True
