from dataclasses import dataclass
from typing import Protocol, List, Optional, Iterable
from datetime import datetime, timedelta

from ..status import AppointmentStatus


@dataclass
class AppointmentDto:
    id: int
    patient_id: str
    doctor_id: str
    date_time: datetime
    duration: int
    status: AppointmentStatus
    reason_for_visit: str
    cancellation_reason: Optional[str]
    cancelled_by: Optional[str]
    rescheduled_from: Optional[datetime]
    rating_score: Optional[int]
    rating_feedback: Optional[str]
    rating_is_anonymous: bool
    version: int
    created_at: datetime
    updated_at: datetime

    @property
    def ends_at(self) -> datetime:
        return self.date_time + timedelta(minutes=self.duration)

    @property
    def rating(self) -> Optional[dict]:
        if self.rating_score is None:
            return None
        return {
            "score": self.rating_score,
            "feedback": self.rating_feedback,
            "is_anonymous": self.rating_is_anonymous,
        }


class AppointmentsRepository(Protocol):
    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        ...

    def create(self, patient_id: str, doctor_id: str, date_time: datetime, duration: int, reason_for_visit: str) -> AppointmentDto:
        ...

    def find_overlapping(self, doctor_id: str, start: datetime, end: datetime, statuses: Iterable[AppointmentStatus], exclude_id: Optional[int] = None) -> List[AppointmentDto]:
        """Appointments whose [date_time, date_time + duration) intersects [start, end)."""
        ...

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
        """start is inclusive, end inclusive, before exclusive."""
        ...

    def update(self, appointment_id: int, expected_version: int, **changes) -> Optional[AppointmentDto]:
        """Compare-and-swap write; returns None when the stored version moved on."""
        ...
