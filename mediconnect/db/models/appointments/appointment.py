# mediconnect/db/models/appointments/appointment.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime

from ....application.status import AppointmentStatus
from ....utils import utcnow


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: str = Field(foreign_key="users.id", index=True)
    doctor_id: str = Field(foreign_key="users.id", index=True)
    date_time: datetime = Field(index=True)
    duration: int = Field(default=30)
    status: AppointmentStatus = Field(default=AppointmentStatus.PENDING_PAYMENT, index=True)
    reason_for_visit: str
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None  # patient | doctor
    rescheduled_from: Optional[datetime] = None
    rating_score: Optional[int] = None
    rating_feedback: Optional[str] = None
    rating_is_anonymous: bool = Field(default=False)
    # Bumped on every write; status updates compare-and-swap on it
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
