# mediconnect/db/models/calendar/doctor_calendar.py
from typing import Optional, List
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, date as date_type
import uuid

from ....utils import utcnow


class DoctorCalendar(SQLModel, table=True):
    __tablename__ = "doctor_calendars"

    id: Optional[int] = Field(default=None, primary_key=True)
    doctor_id: str = Field(foreign_key="users.id", unique=True, index=True)
    last_updated: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)

    days: List["CalendarDay"] = Relationship(
        back_populates="calendar",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    working_hours: List["WorkingHours"] = Relationship(
        back_populates="calendar",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class CalendarDay(SQLModel, table=True):
    __tablename__ = "calendar_days"

    id: Optional[int] = Field(default=None, primary_key=True)
    calendar_id: int = Field(foreign_key="doctor_calendars.id", index=True)
    date: date_type = Field(index=True)
    is_holiday: bool = Field(default=False)
    holiday_reason: Optional[str] = None

    calendar: Optional[DoctorCalendar] = Relationship(back_populates="days")
    slots: List["TimeSlot"] = Relationship(
        back_populates="day",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class WorkingHours(SQLModel, table=True):
    __tablename__ = "working_hours"

    id: Optional[int] = Field(default=None, primary_key=True)
    calendar_id: int = Field(foreign_key="doctor_calendars.id", index=True)
    day: str  # Monday .. Sunday
    is_working: bool = Field(default=True)

    calendar: Optional[DoctorCalendar] = Relationship(back_populates="working_hours")
    slots: List["TimeSlot"] = Relationship(
        back_populates="working_hours",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class TimeSlot(SQLModel, table=True):
    __tablename__ = "time_slots"

    id: Optional[int] = Field(default=None, primary_key=True)
    # Public identifier; survives calendar rewrites
    slot_id: str = Field(default_factory=lambda: str(uuid.uuid4()), index=True)
    day_id: Optional[int] = Field(default=None, foreign_key="calendar_days.id", index=True)
    working_hours_id: Optional[int] = Field(default=None, foreign_key="working_hours.id", index=True)
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    is_booked: bool = Field(default=False)
    is_blocked: bool = Field(default=False)
    block_reason: Optional[str] = None

    day: Optional[CalendarDay] = Relationship(back_populates="slots")
    working_hours: Optional[WorkingHours] = Relationship(back_populates="slots")
