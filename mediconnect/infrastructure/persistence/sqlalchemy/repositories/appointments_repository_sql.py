from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from .....db.models import Appointment
from .....application.ports.appointments_repo import AppointmentsRepository, AppointmentDto
from .....application.status import AppointmentStatus
from .....utils import utcnow

# Upper bound on a booking's length, used to narrow the overlap query
MAX_DURATION_MINUTES = 8 * 60


class SqlAppointmentsRepository(AppointmentsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, a: Appointment) -> AppointmentDto:
        return AppointmentDto(
            id=a.id,
            patient_id=a.patient_id,
            doctor_id=a.doctor_id,
            date_time=a.date_time,
            duration=a.duration,
            status=AppointmentStatus(a.status),
            reason_for_visit=a.reason_for_visit,
            cancellation_reason=a.cancellation_reason,
            cancelled_by=a.cancelled_by,
            rescheduled_from=a.rescheduled_from,
            rating_score=a.rating_score,
            rating_feedback=a.rating_feedback,
            rating_is_anonymous=bool(a.rating_is_anonymous),
            version=a.version,
            created_at=a.created_at,
            updated_at=a.updated_at,
        )

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        a = self.session.get(Appointment, appointment_id, populate_existing=True)
        return self._to_dto(a) if a else None

    def create(self, patient_id: str, doctor_id: str, date_time: datetime, duration: int, reason_for_visit: str) -> AppointmentDto:
        appt = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            date_time=date_time,
            duration=duration,
            reason_for_visit=reason_for_visit,
            status=AppointmentStatus.PENDING_PAYMENT,
        )
        self.session.add(appt)
        self.session.commit()
        self.session.refresh(appt)
        return self._to_dto(appt)

    def find_overlapping(self, doctor_id: str, start: datetime, end: datetime, statuses: Iterable[AppointmentStatus], exclude_id: Optional[int] = None) -> List[AppointmentDto]:
        query = (
            select(Appointment)
            .where(Appointment.doctor_id == doctor_id)
            .where(Appointment.status.in_(list(statuses)))
            .where(Appointment.date_time < end)
            .where(Appointment.date_time > start - timedelta(minutes=MAX_DURATION_MINUTES))
        )
        if exclude_id is not None:
            query = query.where(Appointment.id != exclude_id)
        rows = self.session.exec(query).all()
        # Durations vary per row, so the end-side check happens here
        return [
            self._to_dto(a) for a in rows
            if a.date_time + timedelta(minutes=a.duration) > start
        ]

    def search(
        self,
        patient_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        before: Optional[datetime] = None,
        descending: bool = False,
    ) -> List[AppointmentDto]:
        query = select(Appointment)
        if patient_id is not None:
            query = query.where(Appointment.patient_id == patient_id)
        if doctor_id is not None:
            query = query.where(Appointment.doctor_id == doctor_id)
        if statuses:
            query = query.where(Appointment.status.in_(list(statuses)))
        if start is not None:
            query = query.where(Appointment.date_time >= start)
        if end is not None:
            query = query.where(Appointment.date_time <= end)
        if before is not None:
            query = query.where(Appointment.date_time < before)
        query = query.order_by(Appointment.date_time.desc() if descending else Appointment.date_time.asc())
        return [self._to_dto(a) for a in self.session.exec(query).all()]

    def update(self, appointment_id: int, expected_version: int, **changes) -> Optional[AppointmentDto]:
        stmt = (
            update(Appointment)
            .where(Appointment.id == appointment_id)
            .where(Appointment.version == expected_version)
            .values(**changes, version=expected_version + 1, updated_at=utcnow())
        )
        result = self.session.execute(stmt)
        self.session.commit()
        if result.rowcount != 1:
            return None
        return self.get_by_id(appointment_id)
