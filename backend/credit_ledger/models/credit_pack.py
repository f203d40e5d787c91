import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_ledger.core.database import Base, utcnow

PACK_STATUSES = ("active", "expired", "revoked")
PACK_SOURCES = ("stripe", "paystack", "admin", "refund")


class CreditPack(Base):
    """One batch of credits with a single origin and its own expiration.

    ``source_reference`` carries a unique index: it is the idempotency key
    for grants, so a retried payment event can never create a second pack.
    """

    __tablename__ = "credit_packs"
    __table_args__ = (
        Index("ix_credit_packs_user_id", "user_id"),
        Index("ix_credit_packs_expires_at", "expires_at"),
        Index("uq_credit_packs_source_reference", "source_reference", unique=True),
        CheckConstraint("credits_granted > 0", name="ck_credit_packs_granted_positive"),
        CheckConstraint("credits_remaining >= 0", name="ck_credit_packs_remaining_non_negative"),
        CheckConstraint(
            "credits_remaining <= credits_granted",
            name="ck_credit_packs_remaining_within_granted",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    credits_granted: Mapped[int] = mapped_column(Integer, nullable=False)
    credits_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    source_reference: Mapped[str] = mapped_column(String(255), nullable=False)
    source: Mapped[str] = mapped_column(
        Enum(*PACK_SOURCES, name="credit_pack_source"), nullable=False
    )
    amount_paid: Mapped[int | None] = mapped_column(Integer)
    currency: Mapped[str | None] = mapped_column(String(10))
    status: Mapped[str] = mapped_column(
        Enum(*PACK_STATUSES, name="credit_pack_status"),
        nullable=False,
        default="active",
    )
    issued_at: Mapped[datetime] = mapped_column(default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column()

    user: Mapped["User"] = relationship(back_populates="credit_packs")
    transactions: Mapped[list["LedgerTransaction"]] = relationship(
        back_populates="pack", order_by="LedgerTransaction.created_at"
    )

    def is_spendable(self, now: datetime) -> bool:
        return (
            self.status == "active"
            and self.credits_remaining > 0
            and (self.expires_at is None or self.expires_at > now)
        )

    def __repr__(self) -> str:
        return f"<CreditPack {self.source_reference} {self.credits_remaining}/{self.credits_granted}>"
