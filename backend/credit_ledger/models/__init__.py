from credit_ledger.models.audit_entry import AuditEntry
from credit_ledger.models.credit_pack import CreditPack
from credit_ledger.models.ledger_transaction import LedgerTransaction
from credit_ledger.models.user import User

__all__ = [
    "AuditEntry",
    "CreditPack",
    "LedgerTransaction",
    "User",
]
