import uuid
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_ledger.core.database import Base, utcnow

TRANSACTION_KINDS = (
    "purchase_grant",
    "spend",
    "admin_adjustment",
    "refund_reversal",
    "expiration_writeoff",
)


class LedgerTransaction(Base):
    """Immutable record of a balance-affecting event.

    Positive amounts grant credits, negative amounts spend or deduct them.
    Rows are only ever inserted.
    """

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        Index("ix_ledger_transactions_user_id", "user_id"),
        Index("ix_ledger_transactions_pack_id", "pack_id"),
        Index("ix_ledger_transactions_kind", "kind"),
        Index("ix_ledger_transactions_reference_id", "reference_id"),
        Index("ix_ledger_transactions_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    pack_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("credit_packs.id")
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(
        Enum(*TRANSACTION_KINDS, name="ledger_transaction_kind"),
        nullable=False,
    )
    reference_id: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    pack: Mapped["CreditPack"] = relationship(back_populates="transactions")

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.kind} {self.amount}>"
