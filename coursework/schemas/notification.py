from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationRead(BaseModel):
    id: int
    recipient_email: str
    kind: str
    message: str
    context_ref: str | None = None
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
