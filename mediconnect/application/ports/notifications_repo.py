from dataclasses import dataclass
from typing import Protocol, List, Optional
from datetime import datetime


@dataclass
class NotificationDto:
    id: int
    user_id: str
    title: str
    message: str
    type: str
    appointment_id: Optional[int]
    payment_id: Optional[int]
    is_read: bool
    created_at: datetime


class NotificationsRepository(Protocol):
    def create(self, user_id: str, title: str, message: str, type: str,
               appointment_id: Optional[int] = None, payment_id: Optional[int] = None) -> NotificationDto:
        ...

    def list_for_user(self, user_id: str, is_read: Optional[bool] = None, limit: int = 50, offset: int = 0) -> List[NotificationDto]:
        ...

    def mark_read(self, notification_id: int, user_id: str) -> bool:
        ...
