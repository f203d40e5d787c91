"""Stripe webhook gateway."""

import json
from typing import Any

import stripe

from credit_ledger.services.payments.base import BasePaymentGateway
from credit_ledger.services.payments.exceptions import (
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentConfigurationError,
)
from credit_ledger.services.payments.models import ParsedEvent

# Checkout events that can carry a completed payment
CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"


class StripeGateway(BasePaymentGateway):
    """Stripe Checkout webhooks, signed with the endpoint's ``whsec_`` secret."""

    def __init__(
        self,
        webhook_secret: str,
        tolerance_seconds: int = 300,
        default_credits: int = 100,
    ) -> None:
        if not webhook_secret:
            raise PaymentConfigurationError("STRIPE_WEBHOOK_SECRET is required")
        super().__init__(default_credits)
        self._webhook_secret = webhook_secret
        self._tolerance_seconds = tolerance_seconds

    @property
    def name(self) -> str:
        return "stripe"

    @property
    def signature_header(self) -> str:
        return "stripe-signature"

    def verify(self, raw_payload: bytes, signature_header: str | None) -> ParsedEvent:
        if not signature_header:
            raise InvalidSignatureError(self.name, "missing Stripe-Signature header")

        try:
            payload = raw_payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                payload,
                signature_header,
                self._webhook_secret,
                self._tolerance_seconds,
            )
        except UnicodeDecodeError as exc:
            raise InvalidSignatureError(self.name, "payload is not valid UTF-8") from exc
        except (stripe.SignatureVerificationError, TypeError) as exc:
            raise InvalidSignatureError(self.name, str(exc)) from exc

        try:
            body = json.loads(payload)
        except ValueError as exc:
            raise InvalidSignatureError(self.name, "payload is not valid JSON") from exc
        if not isinstance(body, dict):
            raise InvalidSignatureError(self.name, "payload is not a JSON object")

        data = body.get("data") or {}
        event_object = (data.get("object") or {}) if isinstance(data, dict) else None
        if not isinstance(event_object, dict):
            raise InvalidSignatureError(self.name, "event data is not a JSON object")
        return ParsedEvent(
            gateway=self.name,
            event_type=str(body.get("type") or ""),
            event_id=body.get("id"),
            data=event_object,
        )

    def is_payment_confirmation(self, event: ParsedEvent) -> bool:
        if event.event_type == CHECKOUT_COMPLETED:
            # Delayed payment methods complete the session before the money arrives
            return event.data.get("payment_status") == "paid"
        return event.event_type == ASYNC_PAYMENT_SUCCEEDED

    def extract_reference(self, event: ParsedEvent) -> str:
        session_id = event.data.get("id")
        if not session_id:
            raise InvalidPayloadError(self.name, "checkout session id missing")
        return str(session_id)

    def extract_metadata(self, event: ParsedEvent) -> dict[str, Any]:
        return event.data.get("metadata") or {}

    def extract_payment_details(self, event: ParsedEvent) -> tuple[int | None, str | None]:
        return event.data.get("amount_total"), event.data.get("currency")
