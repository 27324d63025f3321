import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

from ..ports.appointments_repo import AppointmentsRepository, AppointmentDto
from ..ports.payments_repo import PaymentsRepository
from ..ports.user_repo import UserRepository
from ..principal import Principal
from ..status import (
    AppointmentStatus,
    NotificationType,
    Role,
    ACTIVE_STATUSES,
    DOCTOR_ONLY_TARGETS,
    REQUESTABLE_TARGETS,
    RESCHEDULABLE_STATUSES,
    can_transition,
)
from ...exceptions import (
    APIException,
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ...utils import utcnow, to_naive_utc
from .notification_dispatcher import NotificationDispatcher
from .refunds_service import RefundsService, RefundResult

logger = logging.getLogger(__name__)

MIN_DURATION = 5
MAX_DURATION = 8 * 60


@dataclass
class StatusUpdateResult:
    appointment: AppointmentDto
    refund: Optional[RefundResult] = None
    refund_error: Optional[str] = None

    @property
    def message(self) -> str:
        if self.refund_error:
            return "Appointment cancelled but refund processing failed. Our team will process the refund manually."
        return f"Appointment {self.appointment.status.value} successfully"


@dataclass
class AppointmentsService:
    repo: AppointmentsRepository
    user_repo: UserRepository
    payments: PaymentsRepository
    refunds: RefundsService
    dispatcher: NotificationDispatcher

    async def create(self, principal: Principal, doctor_id: str, date_time: datetime, reason_for_visit: str, duration: int = 30) -> AppointmentDto:
        if principal.role != Role.PATIENT:
            raise AuthorizationError("Only patients can book appointments")
        if not reason_for_visit or not reason_for_visit.strip():
            raise ValidationError("Reason for visit is required")
        if duration is None or not MIN_DURATION <= duration <= MAX_DURATION:
            raise ValidationError(f"Duration must be between {MIN_DURATION} and {MAX_DURATION} minutes")
        date_time = to_naive_utc(date_time)
        if date_time <= utcnow():
            raise ValidationError("Appointment time must be in the future")

        doctor = self.user_repo.get_by_id(doctor_id)
        if not doctor or doctor.role != Role.DOCTOR:
            raise NotFoundError("Doctor not found")

        self._ensure_slot_free(doctor_id, date_time, duration)

        appointment = self.repo.create(principal.id, doctor_id, date_time, duration, reason_for_visit.strip())
        logger.info(f"Appointment {appointment.id} created for doctor {doctor_id} at {date_time.isoformat()}")
        await self.dispatcher.appointment_event(appointment, NotificationType.APPOINTMENT_CREATED)
        return appointment

    async def update_status(self, appointment_id: int, principal: Principal, new_status: str, reason: Optional[str] = None) -> StatusUpdateResult:
        appointment = self.repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        self._ensure_participant(appointment, principal, "Not authorized to update this appointment")

        try:
            target = AppointmentStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status: {new_status}")
        if target not in REQUESTABLE_TARGETS:
            raise ValidationError(f"Status cannot be set to {target.value} directly")
        if target in DOCTOR_ONLY_TARGETS and principal.role != Role.DOCTOR:
            raise AuthorizationError(f"Only doctors can mark appointments as {target.value}")
        if not can_transition(appointment.status, target):
            raise InvalidStateError(f"Cannot change appointment from {appointment.status.value} to {target.value}")

        changes: Dict[str, Any] = {"status": target}
        refund: Optional[RefundResult] = None
        refund_error: Optional[str] = None

        if target == AppointmentStatus.CANCELLED:
            changes["cancellation_reason"] = reason
            changes["cancelled_by"] = principal.role.value
            refund, refund_error = await self._refund_for_cancellation(appointment, principal, reason)

        updated = self.repo.update(appointment.id, appointment.version, **changes)
        if updated is None:
            if refund is not None:
                logger.error(
                    f"Appointment {appointment.id} was refunded ({refund.refund_id}) but its cancellation "
                    f"lost a concurrent update; needs manual review"
                )
            raise InvalidStateError("Appointment was modified concurrently; please retry")

        logger.info(f"Appointment {updated.id} {appointment.status.value} -> {target.value} by {principal.role.value}")
        await self.dispatcher.appointment_event(updated, NotificationType(f"appointment_{target.value}"), reason)
        return StatusUpdateResult(appointment=updated, refund=refund, refund_error=refund_error)

    async def request_reschedule(self, appointment_id: int, principal: Principal, new_date_time: datetime, reason: Optional[str] = None) -> AppointmentDto:
        appointment = self.repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        if principal.role != Role.PATIENT or appointment.patient_id != principal.id:
            raise AuthorizationError("Not authorized to reschedule this appointment")
        if appointment.status not in RESCHEDULABLE_STATUSES:
            raise InvalidStateError(f"Cannot reschedule an appointment that is {appointment.status.value}")
        new_date_time = to_naive_utc(new_date_time)
        if new_date_time <= utcnow():
            raise ValidationError("New appointment time must be in the future")

        self._ensure_slot_free(appointment.doctor_id, new_date_time, appointment.duration, exclude_id=appointment.id)

        updated = self.repo.update(
            appointment.id,
            appointment.version,
            rescheduled_from=appointment.date_time,
            date_time=new_date_time,
            status=AppointmentStatus.PENDING,
        )
        if updated is None:
            raise InvalidStateError("Appointment was modified concurrently; please retry")

        logger.info(f"Appointment {updated.id} rescheduled from {appointment.date_time.isoformat()} to {new_date_time.isoformat()}")
        await self.dispatcher.appointment_event(updated, NotificationType.APPOINTMENT_RESCHEDULED, reason)
        return updated

    def add_rating(self, appointment_id: int, principal: Principal, score: int, feedback: Optional[str] = None, is_anonymous: bool = False) -> AppointmentDto:
        appointment = self.repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        if principal.role != Role.PATIENT or appointment.patient_id != principal.id:
            raise AuthorizationError("Not authorized to rate this appointment")
        if appointment.status != AppointmentStatus.COMPLETED:
            raise InvalidStateError("Can only rate completed appointments")
        if score is None or not 1 <= score <= 5:
            raise ValidationError("Rating score must be between 1 and 5")

        updated = self.repo.update(
            appointment.id,
            appointment.version,
            rating_score=score,
            rating_feedback=feedback,
            rating_is_anonymous=bool(is_anonymous),
        )
        if updated is None:
            raise InvalidStateError("Appointment was modified concurrently; please retry")
        return updated

    # Read views

    def get_for_user(self, appointment_id: int, principal: Principal) -> AppointmentDto:
        appointment = self.repo.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        if principal.role != Role.ADMIN:
            self._ensure_participant(appointment, principal, "Not authorized to view this appointment")
        return appointment

    def list_for_user(self, principal: Principal, status: Optional[AppointmentStatus] = None,
                      start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[AppointmentDto]:
        return self.repo.search(
            statuses=[status] if status else None,
            start=start,
            end=end,
            **self._scope(principal),
        )

    def history(self, principal: Principal, status: Optional[AppointmentStatus] = None,
                start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[AppointmentDto]:
        return self.repo.search(
            statuses=[status] if status else None,
            start=start,
            end=end,
            before=utcnow(),
            descending=True,
            **self._scope(principal),
        )

    def doctor_schedule(self, principal: Principal, start: Optional[datetime] = None,
                        end: Optional[datetime] = None, view: str = "week") -> Dict[str, Any]:
        if principal.role != Role.DOCTOR:
            raise AuthorizationError("Only doctors can access schedule view")
        if view not in ("week", "month"):
            raise ValidationError("View must be 'week' or 'month'")
        start = start or utcnow()
        end = end or start + timedelta(days=7 if view == "week" else 30)
        appointments = self.repo.search(doctor_id=principal.id, start=start, end=end)

        schedule: Dict[str, List[AppointmentDto]] = OrderedDict()
        for appointment in appointments:
            schedule.setdefault(appointment.date_time.date().isoformat(), []).append(appointment)
        return {"start_date": start, "end_date": end, "view": view, "schedule": schedule}

    def stats(self, principal: Principal, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
        appointments = self.repo.search(start=start, end=end, **self._scope(principal))
        by_status = {s.value: 0 for s in AppointmentStatus}
        cancelled_by = {"patient": 0, "doctor": 0}
        rating_total, rated = 0, 0
        for appointment in appointments:
            by_status[appointment.status.value] += 1
            if appointment.status == AppointmentStatus.CANCELLED and appointment.cancelled_by in cancelled_by:
                cancelled_by[appointment.cancelled_by] += 1
            if appointment.rating_score:
                rating_total += appointment.rating_score
                rated += 1
        return {
            "total": len(appointments),
            "by_status": by_status,
            "cancelled_by": cancelled_by,
            "average_rating": rating_total / rated if rated else 0,
            "total_rated": rated,
        }

    # Helpers

    async def _refund_for_cancellation(self, appointment: AppointmentDto, principal: Principal, reason: Optional[str]):
        payment = self.payments.refundable_for_appointment(appointment.id)
        if payment is None:
            # Nothing was captured, nothing to give back
            return None, None
        try:
            refund = await self.refunds.process_refund(
                appointment.id,
                f"Appointment cancelled by {principal.role.value}: {reason or 'no reason given'}",
            )
            logger.info(f"Refund processed for appointment {appointment.id}. Refund ID: {refund.refund_id}")
            return refund, None
        except APIException as e:
            logger.error(f"Refund processing failed for appointment {appointment.id}: {e.detail}")
            return None, str(e.detail)

    def _ensure_slot_free(self, doctor_id: str, start: datetime, duration: int, exclude_id: Optional[int] = None) -> None:
        clashes = self.repo.find_overlapping(
            doctor_id, start, start + timedelta(minutes=duration), ACTIVE_STATUSES, exclude_id=exclude_id
        )
        if clashes:
            raise ConflictError("Selected time slot is not available")

    def _ensure_participant(self, appointment: AppointmentDto, principal: Principal, message: str) -> None:
        if principal.role == Role.DOCTOR and appointment.doctor_id == principal.id:
            return
        if principal.role == Role.PATIENT and appointment.patient_id == principal.id:
            return
        raise AuthorizationError(message)

    def _scope(self, principal: Principal) -> Dict[str, str]:
        if principal.role == Role.PATIENT:
            return {"patient_id": principal.id}
        if principal.role == Role.DOCTOR:
            return {"doctor_id": principal.id}
        return {}
