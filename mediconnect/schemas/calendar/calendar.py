# mediconnect/schemas/calendar/calendar.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import date, datetime

from ..common.common import RequestModel


class SlotIn(RequestModel):
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    is_blocked: bool = False


class WorkingDayIn(RequestModel):
    day: str  # Monday .. Sunday
    is_working: bool = True
    slots: List[SlotIn] = []


class WorkingHoursUpdate(RequestModel):
    default_working_hours: List[WorkingDayIn]


class DateScheduleUpdate(RequestModel):
    slots: List[SlotIn] = []
    is_holiday: bool = False
    holiday_reason: Optional[str] = Field(default=None, max_length=255)


class BlockSlotRequest(RequestModel):
    date: str  # YYYY-MM-DD
    start_time: str
    end_time: str
    reason: Optional[str] = Field(default=None, max_length=255)


class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    start_time: str
    end_time: str
    is_booked: bool = False
    is_blocked: bool = False
    block_reason: Optional[str] = None


class DayScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date
    slots: List[SlotResponse] = []
    is_holiday: bool = False
    holiday_reason: Optional[str] = None


class WorkingDayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: str
    is_working: bool
    slots: List[SlotResponse] = []


class CalendarResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    doctor_id: str
    schedule: List[DayScheduleResponse] = []
    default_working_hours: List[WorkingDayResponse] = []
    last_updated: Optional[datetime] = None


class AvailableSlotsResponse(BaseModel):
    date: date
    is_holiday: bool = False
    holiday_reason: Optional[str] = None
    slots: List[SlotResponse] = []
