from typing import List, Optional
from sqlmodel import Session, select

from .....db.models import DoctorCalendar, CalendarDay, WorkingHours, TimeSlot
from .....application.ports.calendar_repo import (
    CalendarRepository,
    CalendarDto,
    DayScheduleDto,
    SlotDto,
    WorkingDayDto,
)
from .....application.slots import WEEKDAYS
from .....utils import utcnow


class SqlCalendarRepository(CalendarRepository):
    """Stores the calendar aggregate; save() rewrites every child row."""

    def __init__(self, session: Session):
        self.session = session

    def _slots_to_dto(self, slots: List[TimeSlot]) -> List[SlotDto]:
        return [
            SlotDto(
                id=s.slot_id,
                start_time=s.start_time,
                end_time=s.end_time,
                is_booked=bool(s.is_booked),
                is_blocked=bool(s.is_blocked),
                block_reason=s.block_reason,
            )
            for s in sorted(slots, key=lambda s: (s.start_time, s.end_time))
        ]

    def _to_dto(self, c: DoctorCalendar) -> CalendarDto:
        return CalendarDto(
            doctor_id=c.doctor_id,
            schedule=[
                DayScheduleDto(
                    date=d.date,
                    slots=self._slots_to_dto(d.slots),
                    is_holiday=bool(d.is_holiday),
                    holiday_reason=d.holiday_reason,
                )
                for d in sorted(c.days, key=lambda d: d.date)
            ],
            default_working_hours=[
                WorkingDayDto(day=w.day, is_working=bool(w.is_working), slots=self._slots_to_dto(w.slots))
                for w in sorted(c.working_hours, key=lambda w: WEEKDAYS.index(w.day) if w.day in WEEKDAYS else len(WEEKDAYS))
            ],
            last_updated=c.last_updated,
        )

    def _row(self, doctor_id: str) -> Optional[DoctorCalendar]:
        return self.session.exec(select(DoctorCalendar).where(DoctorCalendar.doctor_id == doctor_id)).first()

    def _slot_row(self, slot: SlotDto) -> TimeSlot:
        row = TimeSlot(
            start_time=slot.start_time,
            end_time=slot.end_time,
            is_booked=slot.is_booked,
            is_blocked=slot.is_blocked,
            block_reason=slot.block_reason,
        )
        if slot.id:
            row.slot_id = slot.id
        return row

    def get(self, doctor_id: str) -> Optional[CalendarDto]:
        c = self._row(doctor_id)
        return self._to_dto(c) if c else None

    def save(self, calendar: CalendarDto) -> CalendarDto:
        c = self._row(calendar.doctor_id)
        if c is None:
            c = DoctorCalendar(doctor_id=calendar.doctor_id)
            self.session.add(c)

        c.days = [
            CalendarDay(
                date=d.date,
                is_holiday=d.is_holiday,
                holiday_reason=d.holiday_reason,
                slots=[self._slot_row(s) for s in d.slots],
            )
            for d in calendar.schedule
        ]
        c.working_hours = [
            WorkingHours(
                day=w.day,
                is_working=w.is_working,
                slots=[self._slot_row(s) for s in w.slots],
            )
            for w in calendar.default_working_hours
        ]
        c.last_updated = calendar.last_updated or utcnow()
        self.session.add(c)
        self.session.commit()
        self.session.refresh(c)
        return self._to_dto(c)
