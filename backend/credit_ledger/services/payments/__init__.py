"""Payment gateways — webhook verification and reconciliation for Stripe and Paystack."""

from credit_ledger.core.config import settings
from credit_ledger.services.exceptions import NotFoundError
from credit_ledger.services.payments.base import BasePaymentGateway
from credit_ledger.services.payments.exceptions import (
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentConfigurationError,
    PaymentError,
)
from credit_ledger.services.payments.models import (
    ParsedEvent,
    ReconciliationResult,
    WebhookState,
)
from credit_ledger.services.payments.paystack import PaystackGateway
from credit_ledger.services.payments.reconciliation import reconcile_webhook
from credit_ledger.services.payments.stripe import StripeGateway

__all__ = [
    "BasePaymentGateway",
    "InvalidPayloadError",
    "InvalidSignatureError",
    "ParsedEvent",
    "PaymentConfigurationError",
    "PaymentError",
    "PaystackGateway",
    "ReconciliationResult",
    "StripeGateway",
    "WebhookState",
    "get_gateway",
    "reconcile_webhook",
]

SUPPORTED_GATEWAYS = ("stripe", "paystack")


def get_gateway(name: str) -> BasePaymentGateway:
    """Build the gateway for ``name`` from current settings.

    Raises:
        NotFoundError: unknown gateway name.
        PaymentConfigurationError: the gateway's secret is not configured.
    """
    if name == "stripe":
        return StripeGateway(
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            tolerance_seconds=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            default_credits=settings.CREDITS_PER_PACKAGE,
        )
    if name == "paystack":
        return PaystackGateway(
            secret_key=settings.PAYSTACK_SECRET_KEY,
            default_credits=settings.CREDITS_PER_PACKAGE,
        )
    raise NotFoundError("Payment gateway", name)
