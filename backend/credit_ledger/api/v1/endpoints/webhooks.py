"""Payment gateway webhooks — signature-verified, idempotent credit grants.

Gateways redeliver on any non-2xx response, so only transient storage
failures answer 503; everything the gateway can't fix answers 4xx.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from credit_ledger.core.database import get_db
from credit_ledger.schemas.webhooks import WebhookResponse
from credit_ledger.services.exceptions import NotFoundError, StorageUnavailableError
from credit_ledger.services.payments import (
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentConfigurationError,
    get_gateway,
    reconcile_webhook,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{gateway_name}", response_model=WebhookResponse)
async def receive_webhook(
    gateway_name: str,
    request: Request,
    db: Session = Depends(get_db),
):
    try:
        gateway = get_gateway(gateway_name)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except PaymentConfigurationError as exc:
        logger.error("%s webhook received but gateway is not configured: %s", gateway_name, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Payment gateway not configured",
        )

    raw_payload = await request.body()
    signature = request.headers.get(gateway.signature_header)

    try:
        result = await run_in_threadpool(reconcile_webhook, db, gateway, raw_payload, signature)
    except (InvalidSignatureError, InvalidPayloadError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except StorageUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ledger storage unavailable, retry later",
        )

    return WebhookResponse(
        state=result.state.value,
        event_type=result.event_type,
        duplicate=result.duplicate,
        ignored=result.ignored,
        pack_id=result.pack_id,
    )
