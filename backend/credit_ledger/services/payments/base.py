"""Abstract payment gateway interface."""

import uuid
from abc import ABC, abstractmethod
from typing import Any

from credit_ledger.services.payments.exceptions import InvalidPayloadError
from credit_ledger.services.payments.models import ParsedEvent


class BasePaymentGateway(ABC):
    """Capability set every gateway implements over its own event schema."""

    def __init__(self, default_credits: int) -> None:
        self._default_credits = default_credits

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier string, also stored as the pack source."""

    @property
    @abstractmethod
    def signature_header(self) -> str:
        """HTTP header carrying the webhook signature."""

    @abstractmethod
    def verify(self, raw_payload: bytes, signature_header: str | None) -> ParsedEvent:
        """Check the signature over the raw body and parse the event.

        Raises:
            InvalidSignatureError: missing or wrong signature, or a body that
                can't be parsed.
        """

    @abstractmethod
    def is_payment_confirmation(self, event: ParsedEvent) -> bool:
        """Whether the event confirms a completed payment that should grant credits."""

    @abstractmethod
    def extract_reference(self, event: ParsedEvent) -> str:
        """Canonical payment reference — the idempotency key for the grant."""

    @abstractmethod
    def extract_metadata(self, event: ParsedEvent) -> dict[str, Any]:
        """Checkout metadata attached when the payment was initiated."""

    @abstractmethod
    def extract_payment_details(self, event: ParsedEvent) -> tuple[int | None, str | None]:
        """Amount paid in minor units and currency code, as reported by the gateway."""

    def extract_user_id(self, event: ParsedEvent) -> uuid.UUID:
        raw = self.extract_metadata(event).get("userId")
        if not raw:
            raise InvalidPayloadError(self.name, "userId missing from payment metadata")
        try:
            return uuid.UUID(str(raw))
        except ValueError as exc:
            raise InvalidPayloadError(self.name, f"invalid userId in payment metadata: {raw!r}") from exc

    def extract_amount(self, event: ParsedEvent) -> int:
        """Credits to grant: ``creditsGranted`` metadata, or the package default."""
        raw = self.extract_metadata(event).get("creditsGranted")
        if raw in (None, ""):
            return self._default_credits
        # Gateways deliver metadata values as strings; JSON numbers must be whole
        if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
            raise InvalidPayloadError(self.name, f"invalid creditsGranted: {raw!r}")
        try:
            amount = int(raw.strip()) if isinstance(raw, str) else int(raw)
        except (TypeError, ValueError, OverflowError) as exc:
            raise InvalidPayloadError(self.name, f"invalid creditsGranted: {raw!r}") from exc
        if amount <= 0:
            raise InvalidPayloadError(self.name, f"creditsGranted must be positive, got {amount}")
        return amount
