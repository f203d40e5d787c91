"""Payment gateway exceptions."""


class PaymentError(Exception):
    """Base exception for payment webhook handling."""


class InvalidSignatureError(PaymentError):
    """Raised when a webhook fails authenticity checks. Terminal for the event."""

    def __init__(self, gateway: str, message: str) -> None:
        self.gateway = gateway
        super().__init__(f"[{gateway}] {message}")


class InvalidPayloadError(PaymentError):
    """Raised when a verified confirmation event lacks the fields needed to grant credits."""

    def __init__(self, gateway: str, message: str) -> None:
        self.gateway = gateway
        super().__init__(f"[{gateway}] {message}")


class PaymentConfigurationError(PaymentError):
    """Raised when gateway configuration is missing or invalid."""
