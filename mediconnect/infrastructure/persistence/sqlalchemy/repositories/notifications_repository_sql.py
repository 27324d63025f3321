from typing import List, Optional
from sqlmodel import Session, select

from .....db.models import Notification
from .....application.ports.notifications_repo import NotificationsRepository, NotificationDto


class SqlNotificationsRepository(NotificationsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, n: Notification) -> NotificationDto:
        return NotificationDto(
            id=n.id,
            user_id=n.user_id,
            title=n.title,
            message=n.message,
            type=n.type,
            appointment_id=n.appointment_id,
            payment_id=n.payment_id,
            is_read=bool(n.is_read),
            created_at=n.created_at,
        )

    def create(self, user_id: str, title: str, message: str, type: str,
               appointment_id: Optional[int] = None, payment_id: Optional[int] = None) -> NotificationDto:
        n = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            appointment_id=appointment_id,
            payment_id=payment_id,
        )
        self.session.add(n)
        self.session.commit()
        self.session.refresh(n)
        return self._to_dto(n)

    def list_for_user(self, user_id: str, is_read: Optional[bool] = None, limit: int = 50, offset: int = 0) -> List[NotificationDto]:
        query = select(Notification).where(Notification.user_id == user_id)
        if is_read is not None:
            query = query.where(Notification.is_read == is_read)
        query = query.order_by(Notification.created_at.desc()).offset(offset).limit(limit)
        return [self._to_dto(n) for n in self.session.exec(query).all()]

    def mark_read(self, notification_id: int, user_id: str) -> bool:
        n = self.session.exec(
            select(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.user_id == user_id)
        ).first()
        if not n:
            return False
        n.is_read = True
        self.session.add(n)
        self.session.commit()
        return True
