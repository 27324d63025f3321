from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..application.ports.calendar_repo import SlotDto, WorkingDayDto
from ..application.principal import Principal
from ..application.services.calendar_service import CalendarService
from ..application.status import Role
from ..dependencies import get_calendar_service, get_current_principal, require_role
from ..exceptions import create_success_response
from ..schemas.calendar.calendar import (
    AvailableSlotsResponse,
    BlockSlotRequest,
    CalendarResponse,
    DateScheduleUpdate,
    SlotResponse,
    WorkingHoursUpdate,
)
from ..utils import parse_date

router = APIRouter(prefix="/calendar", tags=["Calendar"])


def _dump(calendar) -> dict:
    return CalendarResponse.model_validate(calendar).model_dump(mode="json")


def _slots(items) -> list:
    return [SlotDto(start_time=s.start_time, end_time=s.end_time, is_blocked=s.is_blocked) for s in items]


@router.post("/working-hours")
async def set_working_hours(
    payload: WorkingHoursUpdate,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: CalendarService = Depends(get_calendar_service),
):
    weekly = [WorkingDayDto(day=d.day, is_working=d.is_working, slots=_slots(d.slots)) for d in payload.default_working_hours]
    calendar = await service.set_default_working_hours(principal.id, weekly)
    return create_success_response(_dump(calendar))


@router.put("/date/{date}")
async def update_date_schedule(
    date: str,
    payload: DateScheduleUpdate,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: CalendarService = Depends(get_calendar_service),
):
    calendar = await service.update_date_schedule(
        principal.id, parse_date(date), _slots(payload.slots), payload.is_holiday, payload.holiday_reason
    )
    return create_success_response(_dump(calendar))


@router.post("/block-slot")
async def block_time_slot(
    payload: BlockSlotRequest,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: CalendarService = Depends(get_calendar_service),
):
    calendar, slot = await service.block_time_slot(
        principal.id, parse_date(payload.date), payload.start_time, payload.end_time, payload.reason
    )
    return create_success_response({
        "calendar": _dump(calendar),
        "slot": SlotResponse.model_validate(slot).model_dump(mode="json"),
    })


@router.delete("/block-slot/{date}/{slot_id}")
async def unblock_time_slot(
    date: str,
    slot_id: str,
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: CalendarService = Depends(get_calendar_service),
):
    calendar = await service.unblock_time_slot(principal.id, parse_date(date), slot_id)
    return create_success_response(_dump(calendar), message="Time slot unblocked successfully")


@router.get("/available-slots/{doctor_id}/{date}")
def get_available_slots(
    doctor_id: str,
    date: str,
    service: CalendarService = Depends(get_calendar_service),
):
    result = service.get_available_slots(doctor_id, parse_date(date))
    return create_success_response(AvailableSlotsResponse.model_validate(result, from_attributes=True).model_dump(mode="json"))


@router.get("/{doctor_id}")
def get_calendar(
    doctor_id: str,
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    principal: Principal = Depends(get_current_principal),
    service: CalendarService = Depends(get_calendar_service),
):
    calendar = service.get_calendar(
        doctor_id,
        parse_date(start_date) if start_date else None,
        parse_date(end_date) if end_date else None,
    )
    return create_success_response(_dump(calendar))
