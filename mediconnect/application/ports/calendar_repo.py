from dataclasses import dataclass, field
from typing import Protocol, List, Optional
from datetime import date, datetime


@dataclass
class SlotDto:
    start_time: str
    end_time: str
    is_booked: bool = False
    is_blocked: bool = False
    block_reason: Optional[str] = None
    id: Optional[str] = None


@dataclass
class DayScheduleDto:
    date: date
    slots: List[SlotDto] = field(default_factory=list)
    is_holiday: bool = False
    holiday_reason: Optional[str] = None


@dataclass
class WorkingDayDto:
    day: str
    is_working: bool = True
    slots: List[SlotDto] = field(default_factory=list)


@dataclass
class CalendarDto:
    doctor_id: str
    schedule: List[DayScheduleDto] = field(default_factory=list)
    default_working_hours: List[WorkingDayDto] = field(default_factory=list)
    last_updated: Optional[datetime] = None

    def day_entry(self, value: date) -> Optional[DayScheduleDto]:
        return next((d for d in self.schedule if d.date == value), None)

    def working_day(self, day_name: str) -> Optional[WorkingDayDto]:
        return next((w for w in self.default_working_hours if w.day == day_name), None)


class CalendarRepository(Protocol):
    def get(self, doctor_id: str) -> Optional[CalendarDto]:
        ...

    def save(self, calendar: CalendarDto) -> CalendarDto:
        """Upsert the whole calendar aggregate; assigns ids to new slots."""
        ...
