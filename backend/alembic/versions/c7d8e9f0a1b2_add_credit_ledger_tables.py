"""add users, credit_packs, ledger_transactions and audit_entries tables

Revision ID: c7d8e9f0a1b2
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "c7d8e9f0a1b2"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("is_admin", sa.Boolean(), server_default="false", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Credit packs: one row per grant
    op.create_table(
        "credit_packs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("credits_granted", sa.Integer(), nullable=False),
        sa.Column("credits_remaining", sa.Integer(), nullable=False),
        sa.Column("source_reference", sa.String(length=255), nullable=False),
        sa.Column(
            "source",
            sa.Enum("stripe", "paystack", "admin", "refund", name="credit_pack_source"),
            nullable=False,
        ),
        sa.Column("amount_paid", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=True),
        sa.Column(
            "status",
            sa.Enum("active", "expired", "revoked", name="credit_pack_status"),
            server_default="active",
            nullable=False,
        ),
        sa.Column(
            "issued_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("credits_granted > 0", name="ck_credit_packs_granted_positive"),
        sa.CheckConstraint(
            "credits_remaining >= 0", name="ck_credit_packs_remaining_non_negative"
        ),
        sa.CheckConstraint(
            "credits_remaining <= credits_granted",
            name="ck_credit_packs_remaining_within_granted",
        ),
    )
    op.create_index("ix_credit_packs_user_id", "credit_packs", ["user_id"])
    op.create_index("ix_credit_packs_expires_at", "credit_packs", ["expires_at"])
    op.create_index(
        "uq_credit_packs_source_reference", "credit_packs", ["source_reference"], unique=True
    )

    # Ledger transactions
    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("pack_id", sa.UUID(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "kind",
            sa.Enum(
                "purchase_grant",
                "spend",
                "admin_adjustment",
                "refund_reversal",
                "expiration_writeoff",
                name="ledger_transaction_kind",
            ),
            nullable=False,
        ),
        sa.Column("reference_id", sa.String(length=255), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["pack_id"], ["credit_packs.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ledger_transactions_user_id", "ledger_transactions", ["user_id"])
    op.create_index("ix_ledger_transactions_pack_id", "ledger_transactions", ["pack_id"])
    op.create_index("ix_ledger_transactions_kind", "ledger_transactions", ["kind"])
    op.create_index(
        "ix_ledger_transactions_reference_id", "ledger_transactions", ["reference_id"]
    )
    op.create_index("ix_ledger_transactions_created_at", "ledger_transactions", ["created_at"])

    # Audit entries
    op.create_table(
        "audit_entries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("actor_id", sa.UUID(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("target_user_id", sa.UUID(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["target_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_entries_target_user_id", "audit_entries", ["target_user_id"])
    op.create_index("ix_audit_entries_actor_id", "audit_entries", ["actor_id"])
    op.create_index("ix_audit_entries_created_at", "audit_entries", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_entries_created_at", table_name="audit_entries")
    op.drop_index("ix_audit_entries_actor_id", table_name="audit_entries")
    op.drop_index("ix_audit_entries_target_user_id", table_name="audit_entries")
    op.drop_table("audit_entries")

    op.drop_index("ix_ledger_transactions_created_at", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_reference_id", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_kind", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_pack_id", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_user_id", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")

    op.drop_index("uq_credit_packs_source_reference", table_name="credit_packs")
    op.drop_index("ix_credit_packs_expires_at", table_name="credit_packs")
    op.drop_index("ix_credit_packs_user_id", table_name="credit_packs")
    op.drop_table("credit_packs")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS ledger_transaction_kind")
    op.execute("DROP TYPE IF EXISTS credit_pack_status")
    op.execute("DROP TYPE IF EXISTS credit_pack_source")
