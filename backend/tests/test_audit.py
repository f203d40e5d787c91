from credit_ledger.services.audit import list_audit_entries, record_admin_action
from credit_ledger.services.ledger_store import atomic


class TestRecordAdminAction:
    def test_entry_commits_with_enclosing_unit(self, db, admin_user, user):
        with atomic(db):
            entry = record_admin_action(
                db, admin_user.id, "ADD_CREDITS", target_user_id=user.id, details={"amount": 5}
            )

        [stored] = list_audit_entries(db)
        assert stored.id == entry.id
        assert stored.details == {"amount": 5}

    def test_entry_rolls_back_with_enclosing_unit(self, db, admin_user):
        try:
            with atomic(db):
                record_admin_action(db, admin_user.id, "EXPIRE_STALE_PACKS")
                raise ValueError("abort")
        except ValueError:
            pass

        assert list_audit_entries(db) == []

    def test_details_default_to_empty(self, db, admin_user):
        with atomic(db):
            entry = record_admin_action(db, admin_user.id, "EXPIRE_STALE_PACKS")
        assert entry.details == {}
        assert entry.target_user_id is None


class TestListAuditEntries:
    def test_filters_by_target_user(self, db, admin_user, user, user_factory):
        other = user_factory()
        with atomic(db):
            record_admin_action(db, admin_user.id, "ADD_CREDITS", target_user_id=user.id)
            record_admin_action(db, admin_user.id, "ADD_CREDITS", target_user_id=other.id)

        entries = list_audit_entries(db, target_user_id=user.id)
        assert [e.target_user_id for e in entries] == [user.id]

    def test_limit(self, db, admin_user):
        with atomic(db):
            for _ in range(3):
                record_admin_action(db, admin_user.id, "EXPIRE_STALE_PACKS")
        assert len(list_audit_entries(db, limit=2)) == 2
