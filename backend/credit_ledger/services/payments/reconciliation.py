"""Webhook reconciliation — turns verified payment events into idempotent grants.

Each inbound event moves through ``received → verified → reconciled →
acknowledged``. Verification failures are terminal. Everything after
verification is safe to repeat: a redelivered event finds its pack through
the unique source reference and is acknowledged as a duplicate.
"""

import logging
from datetime import datetime

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from credit_ledger.core.config import settings
from credit_ledger.core.database import to_naive_utc, utcnow
from credit_ledger.services.credits import record_payment_grant
from credit_ledger.services.payments.base import BasePaymentGateway
from credit_ledger.services.payments.exceptions import InvalidSignatureError
from credit_ledger.services.payments.models import ReconciliationResult, WebhookState

logger = logging.getLogger(__name__)


def reconcile_webhook(
    db: Session,
    gateway: BasePaymentGateway,
    raw_payload: bytes,
    signature_header: str | None,
    now: datetime | None = None,
) -> ReconciliationResult:
    """Verify a gateway webhook and grant its credits exactly once.

    Raises:
        InvalidSignatureError: the event failed verification (terminal).
        InvalidPayloadError: a confirmation event without usable metadata.
        NotFoundError: the paying user does not exist.
        StorageUnavailableError: transient; the gateway should redeliver.
    """
    state = WebhookState.RECEIVED
    logger.debug("%s webhook %s (%d bytes)", gateway.name, state.value, len(raw_payload))

    try:
        event = gateway.verify(raw_payload, signature_header)
    except InvalidSignatureError as exc:
        logger.warning("Rejected %s webhook: %s", gateway.name, exc)
        raise
    state = WebhookState.VERIFIED

    if not gateway.is_payment_confirmation(event):
        logger.info("Acknowledged %s event %s without ledger changes", gateway.name, event.event_type)
        return ReconciliationResult(
            gateway=gateway.name,
            event_type=event.event_type,
            state=WebhookState.ACKNOWLEDGED,
            ignored=True,
        )

    reference = gateway.extract_reference(event)
    user_id = gateway.extract_user_id(event)
    amount = gateway.extract_amount(event)
    amount_paid, currency = gateway.extract_payment_details(event)

    issued_at = utcnow() if now is None else to_naive_utc(now)
    expires_at = issued_at + relativedelta(months=settings.CREDIT_EXPIRY_MONTHS)

    pack, created = record_payment_grant(
        db,
        user_id,
        amount,
        reference,
        expires_at,
        source=gateway.name,
        amount_paid=amount_paid,
        currency=currency,
    )
    state = WebhookState.RECONCILED

    if created:
        logger.info("%s payment %s %s: %d credits to user %s", gateway.name, reference, state.value, amount, user_id)
    else:
        logger.warning("Duplicate %s delivery for payment %s, already reconciled", gateway.name, reference)

    return ReconciliationResult(
        gateway=gateway.name,
        event_type=event.event_type,
        state=WebhookState.ACKNOWLEDGED,
        reference=reference,
        user_id=pack.user_id,
        pack_id=pack.id,
        credits_granted=pack.credits_granted,
        duplicate=not created,
    )
