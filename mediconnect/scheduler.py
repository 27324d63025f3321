"""
Maintenance scheduler.

Runs the hourly no-show sweep and the daily appointment reminder sweep
against a fresh database session per run.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlmodel import Session

from .application.ports.email_sender import EmailSender
from .application.ports.event_bus import EventBus
from .application.services.maintenance_service import MaintenanceService
from .application.services.notification_dispatcher import NotificationDispatcher
from .config import settings
from .database import engine
from .infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.notifications_repository_sql import SqlNotificationsRepository
from .infrastructure.persistence.sqlalchemy.repositories.user_repository_sql import SqlUserRepository

logger = logging.getLogger(__name__)


class MaintenanceScheduler:
    def __init__(self, email: Optional[EmailSender] = None, events: Optional[EventBus] = None):
        self.email = email
        self.events = events
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._is_started = False

    def start(self) -> None:
        if self._is_started:
            logger.warning("Maintenance scheduler is already started")
            return

        self.scheduler.add_job(
            self.run_no_show_sweep,
            CronTrigger(minute=0),  # Top of every hour
            id="mark_no_shows",
            name="Mark overdue confirmed appointments as no-show",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_reminder_sweep,
            CronTrigger(hour=settings.REMINDER_HOUR_UTC, minute=0),
            id="send_reminders",
            name="Send reminders for tomorrow's appointments",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.start()
        self._is_started = True
        logger.info("Maintenance scheduler started")

    def stop(self) -> None:
        if self._is_started:
            self.scheduler.shutdown(wait=False)
            self._is_started = False
            logger.info("Maintenance scheduler stopped")

    def _service(self, session: Session) -> MaintenanceService:
        dispatcher = NotificationDispatcher(
            notifications=SqlNotificationsRepository(session),
            users=SqlUserRepository(session),
            email=self.email,
            events=self.events,
        )
        return MaintenanceService(
            appointments=SqlAppointmentsRepository(session),
            dispatcher=dispatcher,
            no_show_grace_minutes=settings.NO_SHOW_GRACE_MINUTES,
        )

    async def run_no_show_sweep(self) -> None:
        with Session(engine) as session:
            try:
                await self._service(session).mark_no_shows()
            except Exception as e:
                logger.exception(f"No-show sweep failed: {e}")

    async def run_reminder_sweep(self) -> None:
        with Session(engine) as session:
            try:
                await self._service(session).send_reminders()
            except Exception as e:
                logger.exception(f"Reminder sweep failed: {e}")
