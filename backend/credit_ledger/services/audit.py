"""Audit trail — append-only log of manual administrative actions."""

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from credit_ledger.models.audit_entry import AuditEntry

logger = logging.getLogger(__name__)


def record_admin_action(
    db: Session,
    actor_id: uuid.UUID,
    action: str,
    target_user_id: uuid.UUID | None = None,
    details: dict[str, Any] | None = None,
) -> AuditEntry:
    """Add an audit entry to the caller's unit of work.

    Never commits on its own: the entry lands together with the ledger
    change it describes, or not at all.
    """
    entry = AuditEntry(
        actor_id=actor_id,
        action=action,
        target_user_id=target_user_id,
        details=details or {},
    )
    db.add(entry)
    db.flush()

    logger.info("Admin action %s by %s (target: %s)", action, actor_id, target_user_id)
    return entry


def list_audit_entries(
    db: Session,
    target_user_id: uuid.UUID | None = None,
    limit: int = 50,
) -> list[AuditEntry]:
    query = select(AuditEntry)
    if target_user_id is not None:
        query = query.where(AuditEntry.target_user_id == target_user_id)
    return list(
        db.execute(query.order_by(AuditEntry.created_at.desc()).limit(limit)).scalars().all()
    )
