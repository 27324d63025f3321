# mediconnect/schemas/appointments/appointment.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from ..common.common import RequestModel
from ...application.status import AppointmentStatus


class AppointmentCreate(RequestModel):
    doctor_id: str
    date_time: datetime
    reason_for_visit: str = Field(min_length=1, max_length=1000)
    duration: int = Field(default=30, ge=5, le=480)


class StatusUpdate(RequestModel):
    status: str
    reason: Optional[str] = Field(default=None, max_length=500)


class RescheduleRequest(RequestModel):
    new_date_time: datetime
    reason: Optional[str] = Field(default=None, max_length=500)


class RatingCreate(RequestModel):
    score: int = Field(ge=1, le=5)
    feedback: Optional[str] = Field(default=None, max_length=1000)
    is_anonymous: bool = False


class RatingResponse(BaseModel):
    score: int
    feedback: Optional[str] = None
    is_anonymous: bool = False


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: str
    doctor_id: str
    date_time: datetime
    duration: int
    status: AppointmentStatus
    reason_for_visit: str
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    rescheduled_from: Optional[datetime] = None
    rating: Optional[RatingResponse] = None
    created_at: datetime
    updated_at: datetime
