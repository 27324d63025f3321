import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..ports.appointments_repo import AppointmentsRepository
from ..status import AppointmentStatus, NotificationType
from ...utils import day_bounds, utcnow
from .notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceService:
    """Periodic sweeps run by the scheduler. Safe to run repeatedly."""
    appointments: AppointmentsRepository
    dispatcher: NotificationDispatcher
    no_show_grace_minutes: int = 30

    async def mark_no_shows(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        cutoff = now - timedelta(minutes=self.no_show_grace_minutes)
        overdue = self.appointments.search(statuses=[AppointmentStatus.CONFIRMED], before=cutoff)

        marked = 0
        for appointment in overdue:
            updated = self.appointments.update(appointment.id, appointment.version, status=AppointmentStatus.NO_SHOW)
            if updated is None:
                logger.info(f"Appointment {appointment.id} changed during no-show sweep; skipping")
                continue
            marked += 1
            await self.dispatcher.appointment_event(updated, NotificationType.APPOINTMENT_NO_SHOW)

        if marked:
            logger.info(f"Marked {marked} appointments as no-show")
        return marked

    async def send_reminders(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        start, end = day_bounds((now + timedelta(days=1)).date())
        upcoming = self.appointments.search(statuses=[AppointmentStatus.CONFIRMED], start=start, before=end)

        for appointment in upcoming:
            await self.dispatcher.appointment_event(appointment, NotificationType.APPOINTMENT_REMINDER)

        logger.info(f"Sent reminders for {len(upcoming)} appointments")
        return len(upcoming)
