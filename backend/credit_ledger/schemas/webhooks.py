import uuid

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    received: bool = True
    state: str
    event_type: str
    duplicate: bool = False
    ignored: bool = False
    pack_id: uuid.UUID | None = None
