# mediconnect/schemas/notifications/notification.py
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: str
    appointment_id: Optional[int] = None
    payment_id: Optional[int] = None
    is_read: bool
    created_at: datetime
