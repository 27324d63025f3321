from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..application.principal import Principal
from ..application.services.appointments_service import AppointmentsService
from ..application.status import AppointmentStatus, Role
from ..dependencies import get_appointments_service, get_current_principal, require_role
from ..exceptions import create_success_response
from ..schemas.appointments.appointment import (
    AppointmentCreate,
    AppointmentResponse,
    RatingCreate,
    RescheduleRequest,
    StatusUpdate,
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def _dump(appointment) -> dict:
    return AppointmentResponse.model_validate(appointment).model_dump(mode="json")


@router.post("", status_code=201)
async def create_appointment(
    payload: AppointmentCreate,
    principal: Principal = Depends(require_role(Role.PATIENT)),
    service: AppointmentsService = Depends(get_appointments_service),
):
    appointment = await service.create(
        principal,
        doctor_id=payload.doctor_id,
        date_time=payload.date_time,
        reason_for_visit=payload.reason_for_visit,
        duration=payload.duration,
    )
    return create_success_response(_dump(appointment))


@router.get("")
def list_appointments(
    status: Optional[AppointmentStatus] = None,
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    principal: Principal = Depends(get_current_principal),
    service: AppointmentsService = Depends(get_appointments_service),
):
    appointments = service.list_for_user(principal, status=status, start=start_date, end=end_date)
    return create_success_response([_dump(a) for a in appointments])


@router.get("/schedule")
def doctor_schedule(
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    view: str = "week",
    principal: Principal = Depends(require_role(Role.DOCTOR)),
    service: AppointmentsService = Depends(get_appointments_service),
):
    result = service.doctor_schedule(principal, start=start_date, end=end_date, view=view)
    result["schedule"] = {day: [_dump(a) for a in items] for day, items in result["schedule"].items()}
    result["start_date"] = result["start_date"].isoformat()
    result["end_date"] = result["end_date"].isoformat()
    return create_success_response(result)


@router.get("/stats")
def appointment_stats(
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    principal: Principal = Depends(get_current_principal),
    service: AppointmentsService = Depends(get_appointments_service),
):
    return create_success_response(service.stats(principal, start=start_date, end=end_date))


@router.get("/history")
def appointment_history(
    status: Optional[AppointmentStatus] = None,
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    principal: Principal = Depends(get_current_principal),
    service: AppointmentsService = Depends(get_appointments_service),
):
    appointments = service.history(principal, status=status, start=start_date, end=end_date)
    return create_success_response([_dump(a) for a in appointments])


@router.get("/{appointment_id}")
def get_appointment(
    appointment_id: int,
    principal: Principal = Depends(get_current_principal),
    service: AppointmentsService = Depends(get_appointments_service),
):
    return create_success_response(_dump(service.get_for_user(appointment_id, principal)))


@router.put("/{appointment_id}/status")
async def update_status(
    appointment_id: int,
    payload: StatusUpdate,
    principal: Principal = Depends(require_role(Role.DOCTOR, Role.PATIENT)),
    service: AppointmentsService = Depends(get_appointments_service),
):
    result = await service.update_status(appointment_id, principal, payload.status, payload.reason)
    data = {"appointment": _dump(result.appointment)}
    if result.refund is not None:
        data["refund"] = {
            "payment_id": result.refund.payment_id,
            "refund_id": result.refund.refund_id,
            "status": result.refund.status,
            "amount": result.refund.amount,
            "currency": result.refund.currency,
        }
    if result.refund_error is not None:
        data["refund_error"] = result.refund_error
    return create_success_response(data, message=result.message)


@router.post("/{appointment_id}/reschedule")
async def reschedule_appointment(
    appointment_id: int,
    payload: RescheduleRequest,
    principal: Principal = Depends(require_role(Role.PATIENT)),
    service: AppointmentsService = Depends(get_appointments_service),
):
    appointment = await service.request_reschedule(appointment_id, principal, payload.new_date_time, payload.reason)
    return create_success_response(_dump(appointment), message="Appointment rescheduled successfully")


@router.post("/{appointment_id}/rating")
def rate_appointment(
    appointment_id: int,
    payload: RatingCreate,
    principal: Principal = Depends(require_role(Role.PATIENT)),
    service: AppointmentsService = Depends(get_appointments_service),
):
    appointment = service.add_rating(appointment_id, principal, payload.score, payload.feedback, payload.is_anonymous)
    return create_success_response(_dump(appointment))
