# mediconnect/db/models/notifications/notification.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime

from ....utils import utcnow


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    title: str
    message: str
    type: str  # NotificationType value
    appointment_id: Optional[int] = Field(default=None, foreign_key="appointments.id")
    payment_id: Optional[int] = Field(default=None, foreign_key="payments.id")
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
