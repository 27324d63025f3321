import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from ..ports.appointments_repo import AppointmentDto
from ..ports.payments_repo import PaymentDto
from ..ports.notifications_repo import NotificationsRepository
from ..ports.user_repo import UserRepository, UserDto
from ..ports.email_sender import EmailSender
from ..ports.event_bus import EventBus
from ..status import NotificationType as N

logger = logging.getLogger(__name__)

# (doctor title, doctor message, patient title, patient message)
APPOINTMENT_MESSAGES = {
    N.APPOINTMENT_CREATED: (
        "New Appointment Request", "Appointment requested with {patient} on {when}",
        "Appointment Requested", "Your appointment with Dr. {doctor} on {when} has been requested",
    ),
    N.APPOINTMENT_PENDING: (
        "Appointment Awaiting Confirmation", "Appointment with {patient} on {when} is awaiting your confirmation",
        "Appointment Awaiting Confirmation", "Your appointment with Dr. {doctor} on {when} is awaiting confirmation",
    ),
    N.APPOINTMENT_CONFIRMED: (
        "Appointment Confirmed", "Your appointment with {patient} on {when} is confirmed",
        "Appointment Confirmed", "Your appointment with Dr. {doctor} on {when} is confirmed",
    ),
    N.APPOINTMENT_CANCELLED: (
        "Appointment Cancelled", "Appointment with {patient} on {when} has been cancelled",
        "Appointment Cancelled", "Your appointment with Dr. {doctor} on {when} has been cancelled",
    ),
    N.APPOINTMENT_RESCHEDULED: (
        "Appointment Rescheduled", "Appointment with {patient} has been rescheduled to {when}",
        "Appointment Rescheduled", "Your appointment with Dr. {doctor} has been rescheduled to {when}",
    ),
    N.APPOINTMENT_COMPLETED: (
        "Appointment Completed", "Your appointment with {patient} on {when} is marked as completed",
        "Appointment Completed", "Your appointment with Dr. {doctor} on {when} is complete",
    ),
    N.APPOINTMENT_NO_SHOW: (
        "Appointment Missed", "Appointment with {patient} on {when} was marked as a no-show",
        "Appointment Missed", "Your appointment with Dr. {doctor} on {when} was missed",
    ),
    N.APPOINTMENT_REMINDER: (
        "Appointment Reminder", "Reminder: appointment with {patient} on {when}",
        "Appointment Reminder", "Reminder: your appointment with Dr. {doctor} is on {when}",
    ),
}

PAYMENT_MESSAGES = {
    N.PAYMENT_COMPLETED: ("Payment Successful", "Your payment of {amount} {currency} has been processed successfully."),
    N.PAYMENT_FAILED: ("Payment Failed", "Your payment of {amount} {currency} could not be processed."),
    N.REFUND_COMPLETED: ("Refund Completed", "Your refund of {amount} {currency} has been processed."),
    N.REFUND_FAILED: ("Refund Pending Review", "Your refund of {amount} {currency} could not be processed automatically and will be reviewed by our team."),
}


def _when(appointment: AppointmentDto) -> str:
    return appointment.date_time.strftime("%Y-%m-%d %H:%M UTC")


def _html(title: str, message: str, extra: Optional[str] = None) -> str:
    body = f"<h2>{title}</h2><p>{message}</p>"
    if extra:
        body += f"<p>{extra}</p>"
    return body


@dataclass
class NotificationDispatcher:
    """Best-effort fan-out of lifecycle events.

    Runs after the state write it reports on has committed. Every failure is
    logged and swallowed; nothing here may fail or roll back the caller.
    """
    notifications: NotificationsRepository
    users: UserRepository
    email: Optional[EmailSender] = None
    events: Optional[EventBus] = None

    async def appointment_event(self, appointment: AppointmentDto, event: N, reason: Optional[str] = None) -> None:
        try:
            await self._appointment_event(appointment, N(event), reason)
        except Exception:
            logger.exception(f"Failed to dispatch {event} for appointment {appointment.id}")

    async def payment_event(self, payment: PaymentDto, appointment: Optional[AppointmentDto], event: N) -> None:
        try:
            await self._payment_event(payment, appointment, N(event))
        except Exception:
            logger.exception(f"Failed to dispatch {event} for payment {payment.id}")

    async def schedule_update(self, doctor_id: str, summary: Dict[str, Any]) -> None:
        try:
            doctor = self.users.get_by_id(doctor_id)
            title = "Schedule Updated"
            message = f"Your schedule was updated ({summary.get('change', 'calendar')})."
            self.notifications.create(doctor_id, title, message, N.SCHEDULE_UPDATED.value)
            await self._publish(N.SCHEDULE_UPDATED.value, {"doctor_id": doctor_id, **summary})
            if doctor:
                await self._send_email(doctor.email, title, _html(title, message))
        except Exception:
            logger.exception(f"Failed to dispatch schedule update for doctor {doctor_id}")

    async def _appointment_event(self, appointment: AppointmentDto, event: N, reason: Optional[str]) -> None:
        template = APPOINTMENT_MESSAGES.get(event)
        if template is None:
            logger.error(f"Invalid notification type: {event}")
            return
        doctor = self.users.get_by_id(appointment.doctor_id)
        patient = self.users.get_by_id(appointment.patient_id)
        names = {
            "doctor": doctor.full_name if doctor else "your doctor",
            "patient": patient.full_name if patient else "your patient",
            "when": _when(appointment),
        }
        doctor_title, doctor_msg, patient_title, patient_msg = template
        deliveries = [
            (appointment.doctor_id, doctor, doctor_title, doctor_msg.format(**names)),
            (appointment.patient_id, patient, patient_title, patient_msg.format(**names)),
        ]
        for user_id, user, title, message in deliveries:
            self.notifications.create(user_id, title, message, event.value, appointment_id=appointment.id)
        logger.info(f"Created {event.value} notifications for appointment {appointment.id}")

        await self._publish(event.value, {
            "appointment_id": appointment.id,
            "status": appointment.status.value,
            "user_ids": [appointment.doctor_id, appointment.patient_id],
        })

        extra = f"Reason: {reason}" if reason else None
        for _, user, title, message in deliveries:
            if user is not None:
                await self._send_email(user.email, title, _html(title, message, extra))

    async def _payment_event(self, payment: PaymentDto, appointment: Optional[AppointmentDto], event: N) -> None:
        template = PAYMENT_MESSAGES.get(event)
        if template is None:
            raise ValueError(f"Invalid notification type: {event}")
        if appointment is None:
            logger.error(f"Payment {payment.id} has no appointment; skipping {event.value}")
            return
        title, message = template
        amount = payment.refund_amount if event == N.REFUND_COMPLETED and payment.refund_amount else payment.amount
        message = message.format(amount=f"{amount:.2f}", currency=payment.currency)
        self.notifications.create(
            appointment.patient_id, title, message, event.value,
            appointment_id=appointment.id, payment_id=payment.id,
        )
        logger.info(f"Payment notification {event.value} created for payment {payment.id}")
        await self._publish(event.value, {
            "payment_id": payment.id,
            "appointment_id": appointment.id,
            "status": payment.status.value,
            "user_ids": [appointment.patient_id],
        })
        patient: Optional[UserDto] = self.users.get_by_id(appointment.patient_id)
        if patient is not None:
            await self._send_email(patient.email, title, _html(title, message))

    async def _publish(self, topic: str, payload: Dict[str, Any]) -> None:
        if self.events is None:
            return
        try:
            await self.events.publish(topic, payload)
        except Exception:
            logger.exception(f"Event publish failed for {topic}")

    async def _send_email(self, to: str, subject: str, html: str) -> None:
        if self.email is None or not to:
            logger.debug(f"Email sender not configured; skipping '{subject}'")
            return
        try:
            await self.email.send(to, subject, html)
        except Exception as e:
            logger.error(f"Email sending failed for '{subject}': {e}")
