"""Doctor calendar slot rules.

Pure functions over the calendar DTOs: format validation, de-duplication,
and resolution of the effective slots for a date. Booking state is never read
from the calendar; callers pass the time-of-day of live appointments in.
"""
from dataclasses import replace
from datetime import date
from typing import Iterable, List, Optional, Set, Tuple

from ..exceptions import ValidationError
from ..utils import is_valid_time, normalize_time
from .ports.calendar_repo import CalendarDto, DayScheduleDto, SlotDto

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def weekday_name(value: date) -> str:
    return WEEKDAYS[value.weekday()]


def validate_time_range(start_time: str, end_time: str) -> Tuple[str, str]:
    if not is_valid_time(start_time) or not is_valid_time(end_time):
        raise ValidationError("Invalid time slot format. Use HH:MM format")
    start, end = normalize_time(start_time), normalize_time(end_time)
    if start >= end:
        raise ValidationError("Invalid time slot: start time must be before end time")
    return start, end


def validate_slots(slots: Iterable[SlotDto]) -> List[SlotDto]:
    checked = []
    for slot in slots:
        start, end = validate_time_range(slot.start_time, slot.end_time)
        checked.append(replace(slot, start_time=start, end_time=end))
    return checked


def dedupe_slots(slots: Iterable[SlotDto]) -> List[SlotDto]:
    """Keep the first slot for every (start_time, end_time) pair."""
    seen: Set[Tuple[str, str]] = set()
    unique = []
    for slot in slots:
        key = (slot.start_time, slot.end_time)
        if key in seen:
            continue
        seen.add(key)
        unique.append(slot)
    return unique


def effective_slots(calendar: CalendarDto, value: date) -> Tuple[Optional[DayScheduleDto], List[SlotDto]]:
    """Explicit date entry wins over weekday defaults; holidays resolve to nothing."""
    day = calendar.day_entry(value)
    if day is not None:
        return day, ([] if day.is_holiday else list(day.slots))
    default = calendar.working_day(weekday_name(value))
    if default is not None and default.is_working:
        return None, list(default.slots)
    return None, []


def available_slots(calendar: CalendarDto, value: date, booked_times: Iterable[str]) -> Tuple[Optional[DayScheduleDto], List[SlotDto]]:
    """Unblocked slots for the date, annotated with is_booked and sorted by start time."""
    day, candidates = effective_slots(calendar, value)
    taken = set(booked_times)
    result = [
        replace(slot, is_booked=slot.start_time in taken)
        for slot in candidates
        if not slot.is_blocked
    ]
    result.sort(key=lambda s: s.start_time)
    return day, result


def time_in_range(value: str, start_time: str, end_time: str) -> bool:
    return start_time <= value < end_time
