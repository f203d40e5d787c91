"""Credit ledger exceptions.

Raised by the ledger store and the credit operations, mapped to HTTP status
codes by the endpoint modules.
"""

import uuid


class LedgerError(Exception):
    """Base exception for credit ledger operations."""


class LedgerValidationError(LedgerError):
    """Raised when a request is rejected before any write."""


class InvalidAmountError(LedgerValidationError):
    """Raised when a credit amount is not an acceptable integer."""

    def __init__(self, amount: object, reason: str) -> None:
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class InsufficientBalanceError(LedgerError):
    """Raised when a user's spendable credits can't cover a debit."""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: required {required}, available {available}")


class BalanceOutOfRangeError(LedgerError):
    """Raised when an adjustment would move a balance outside its allowed range."""

    def __init__(self, current: int, adjustment: int, minimum: int, maximum: int) -> None:
        self.current = current
        self.adjustment = adjustment
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"Adjustment of {adjustment} would move balance {current} outside [{minimum}, {maximum}]"
        )


class ConflictError(LedgerError):
    """Raised when a pack with the same source reference already exists."""

    def __init__(self, source_reference: str) -> None:
        self.source_reference = source_reference
        super().__init__(f"Source reference already recorded: {source_reference}")


class StorageUnavailableError(LedgerError):
    """Raised on database I/O failure or timeout. Safe for the caller to retry."""


class NotFoundError(LedgerError):
    """Raised when a user, pack, or gateway does not exist."""

    def __init__(self, kind: str, identifier: uuid.UUID | str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")
