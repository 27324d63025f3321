import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import List, Optional, Dict, Any, Tuple

from ..ports.appointments_repo import AppointmentsRepository
from ..ports.calendar_repo import CalendarRepository, CalendarDto, DayScheduleDto, SlotDto, WorkingDayDto
from ..slots import (
    WEEKDAYS,
    available_slots,
    dedupe_slots,
    time_in_range,
    validate_slots,
    validate_time_range,
    weekday_name,
)
from ..status import ACTIVE_STATUSES, BOOKED_STATUSES
from ...exceptions import ConflictError, NotFoundError, ValidationError
from ...utils import day_bounds, time_of_day, utcnow
from .notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class CalendarService:
    calendars: CalendarRepository
    appointments: AppointmentsRepository
    dispatcher: NotificationDispatcher

    async def set_default_working_hours(self, doctor_id: str, weekly: List[WorkingDayDto]) -> CalendarDto:
        seen = set()
        checked: List[WorkingDayDto] = []
        for entry in weekly:
            if entry.day not in WEEKDAYS:
                raise ValidationError(f"Invalid day: {entry.day}")
            if entry.day in seen:
                raise ValidationError(f"Duplicate working hours for {entry.day}")
            seen.add(entry.day)
            checked.append(replace(entry, slots=dedupe_slots(validate_slots(entry.slots))))

        calendar = self.calendars.get(doctor_id) or CalendarDto(doctor_id=doctor_id)
        calendar.default_working_hours = checked
        calendar.last_updated = utcnow()
        saved = self.calendars.save(calendar)

        logger.info(f"Default working hours set for doctor {doctor_id} ({len(checked)} days)")
        await self.dispatcher.schedule_update(doctor_id, {"change": "default working hours"})
        return saved

    async def update_date_schedule(self, doctor_id: str, value: date, slots: List[SlotDto],
                                   is_holiday: bool = False, holiday_reason: Optional[str] = None) -> CalendarDto:
        unique = dedupe_slots(validate_slots(slots or []))

        calendar = self.calendars.get(doctor_id) or CalendarDto(doctor_id=doctor_id)
        entry = DayScheduleDto(date=value, slots=unique, is_holiday=bool(is_holiday),
                               holiday_reason=holiday_reason if is_holiday else None)
        calendar.schedule = [d for d in calendar.schedule if d.date != value] + [entry]
        calendar.schedule.sort(key=lambda d: d.date)
        calendar.last_updated = utcnow()
        saved = self.calendars.save(calendar)

        logger.info(f"Schedule for {value.isoformat()} updated for doctor {doctor_id}")
        await self.dispatcher.schedule_update(doctor_id, {"change": f"schedule for {value.isoformat()}", "date": value.isoformat()})
        return saved

    async def block_time_slot(self, doctor_id: str, value: date, start_time: str, end_time: str,
                              reason: Optional[str] = None) -> Tuple[CalendarDto, SlotDto]:
        start_time, end_time = validate_time_range(start_time, end_time)

        day_start, day_end = day_bounds(value)
        active = self.appointments.search(doctor_id=doctor_id, statuses=ACTIVE_STATUSES, start=day_start, before=day_end)
        for appointment in active:
            if time_in_range(time_of_day(appointment.date_time), start_time, end_time):
                raise ConflictError("Cannot block slot with existing appointment")

        calendar = self.calendars.get(doctor_id) or CalendarDto(doctor_id=doctor_id)
        day = calendar.day_entry(value)
        if day is None:
            # First override for this date keeps the weekday's slots bookable
            default = calendar.working_day(weekday_name(value))
            seeded = [replace(s, id=None) for s in default.slots] if default and default.is_working else []
            day = DayScheduleDto(date=value, slots=seeded)
            calendar.schedule.append(day)
            calendar.schedule.sort(key=lambda d: d.date)

        day.slots = [s for s in day.slots if (s.start_time, s.end_time) != (start_time, end_time)]
        day.slots.append(SlotDto(start_time=start_time, end_time=end_time, is_blocked=True, block_reason=reason))
        calendar.last_updated = utcnow()
        saved = self.calendars.save(calendar)

        blocked = next(
            s for s in saved.day_entry(value).slots
            if s.is_blocked and (s.start_time, s.end_time) == (start_time, end_time)
        )
        logger.info(f"Blocked {start_time}-{end_time} on {value.isoformat()} for doctor {doctor_id}")
        await self.dispatcher.schedule_update(doctor_id, {
            "change": f"blocked {start_time}-{end_time} on {value.isoformat()}",
            "date": value.isoformat(),
            "reason": reason,
        })
        return saved, blocked

    async def unblock_time_slot(self, doctor_id: str, value: date, slot_id: str) -> CalendarDto:
        calendar = self.calendars.get(doctor_id)
        if calendar is None:
            raise NotFoundError("Calendar not found")
        day = calendar.day_entry(value)
        if day is None:
            raise NotFoundError("No schedule found for this date")
        remaining = [s for s in day.slots if s.id != slot_id]
        if len(remaining) == len(day.slots):
            raise NotFoundError("Time slot not found")

        day.slots = remaining
        calendar.last_updated = utcnow()
        saved = self.calendars.save(calendar)
        logger.info(f"Slot {slot_id} removed from {value.isoformat()} for doctor {doctor_id}")
        await self.dispatcher.schedule_update(doctor_id, {"change": f"unblocked slot on {value.isoformat()}", "date": value.isoformat()})
        return saved

    def get_calendar(self, doctor_id: str, start_date: Optional[date] = None, end_date: Optional[date] = None) -> CalendarDto:
        if start_date and end_date and start_date > end_date:
            raise ValidationError("Start date must be before end date")
        calendar = self.calendars.get(doctor_id)
        if calendar is None:
            raise NotFoundError("Calendar not found")
        calendar.schedule = [
            d for d in calendar.schedule
            if (start_date is None or d.date >= start_date) and (end_date is None or d.date <= end_date)
        ]
        return calendar

    def get_available_slots(self, doctor_id: str, value: date) -> Dict[str, Any]:
        calendar = self.calendars.get(doctor_id)
        if calendar is None:
            raise NotFoundError("Calendar not found")

        day_start, day_end = day_bounds(value)
        booked = self.appointments.search(doctor_id=doctor_id, statuses=BOOKED_STATUSES, start=day_start, before=day_end)
        day, slots = available_slots(calendar, value, [time_of_day(a.date_time) for a in booked])
        return {
            "date": value,
            "is_holiday": bool(day and day.is_holiday),
            "holiday_reason": day.holiday_reason if day else None,
            "slots": slots,
        }
