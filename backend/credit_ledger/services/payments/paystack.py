"""Paystack webhook gateway."""

import hashlib
import hmac
import json
from typing import Any

from credit_ledger.services.payments.base import BasePaymentGateway
from credit_ledger.services.payments.exceptions import (
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentConfigurationError,
)
from credit_ledger.services.payments.models import ParsedEvent

CHARGE_SUCCESS = "charge.success"


def compute_signature(secret_key: str, raw_payload: bytes) -> str:
    """Hex HMAC-SHA512 of the raw body, keyed with the Paystack secret key."""
    return hmac.new(secret_key.encode("utf-8"), raw_payload, hashlib.sha512).hexdigest()


class PaystackGateway(BasePaymentGateway):
    """Paystack webhooks, signed in the ``x-paystack-signature`` header."""

    def __init__(self, secret_key: str, default_credits: int = 100) -> None:
        if not secret_key:
            raise PaymentConfigurationError("PAYSTACK_SECRET_KEY is required")
        super().__init__(default_credits)
        self._secret_key = secret_key

    @property
    def name(self) -> str:
        return "paystack"

    @property
    def signature_header(self) -> str:
        return "x-paystack-signature"

    def verify(self, raw_payload: bytes, signature_header: str | None) -> ParsedEvent:
        if not signature_header:
            raise InvalidSignatureError(self.name, "missing x-paystack-signature header")

        expected = compute_signature(self._secret_key, raw_payload).encode("ascii")
        provided = signature_header.strip().lower().encode("utf-8", errors="replace")
        if not hmac.compare_digest(expected, provided):
            raise InvalidSignatureError(self.name, "signature mismatch")

        try:
            body = json.loads(raw_payload)
        except ValueError as exc:
            raise InvalidSignatureError(self.name, "payload is not valid JSON") from exc
        if not isinstance(body, dict):
            raise InvalidSignatureError(self.name, "payload is not a JSON object")

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise InvalidSignatureError(self.name, "event data is not a JSON object")
        event_id = data.get("id")
        return ParsedEvent(
            gateway=self.name,
            event_type=str(body.get("event") or ""),
            event_id=str(event_id) if event_id is not None else None,
            data=data,
        )

    def is_payment_confirmation(self, event: ParsedEvent) -> bool:
        return event.event_type == CHARGE_SUCCESS and event.data.get("status") == "success"

    def extract_reference(self, event: ParsedEvent) -> str:
        reference = event.data.get("reference")
        if not reference:
            raise InvalidPayloadError(self.name, "transaction reference missing")
        return str(reference)

    def extract_metadata(self, event: ParsedEvent) -> dict[str, Any]:
        metadata = event.data.get("metadata") or {}
        # Paystack echoes metadata back as a JSON string when it was sent as one
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except ValueError as exc:
                raise InvalidPayloadError(self.name, "metadata is not valid JSON") from exc
        if not isinstance(metadata, dict):
            raise InvalidPayloadError(self.name, "metadata is not an object")
        return metadata

    def extract_payment_details(self, event: ParsedEvent) -> tuple[int | None, str | None]:
        return event.data.get("amount"), event.data.get("currency")
