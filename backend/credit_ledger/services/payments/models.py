"""Payment webhook models."""

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class WebhookState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    RECONCILED = "reconciled"
    ACKNOWLEDGED = "acknowledged"


class ParsedEvent(BaseModel):
    """A gateway event whose signature has been checked."""

    gateway: str
    event_type: str
    event_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class ReconciliationResult(BaseModel):
    gateway: str
    event_type: str
    state: WebhookState
    reference: str | None = None
    user_id: uuid.UUID | None = None
    pack_id: uuid.UUID | None = None
    credits_granted: int | None = None
    duplicate: bool = False
    ignored: bool = False
