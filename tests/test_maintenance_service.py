from datetime import datetime, timedelta

import pytest

from mediconnect.application.services.maintenance_service import MaintenanceService
from mediconnect.application.status import AppointmentStatus
from tests.fakes import DOCTOR, OTHER_PATIENT, PATIENT, World

NOW = datetime(2030, 5, 6, 12, 0)


@pytest.mark.asyncio
async def test_no_show_sweep_marks_only_overdue_confirmed():
    w = World()
    overdue = w.appointments.add(PATIENT.id, DOCTOR.id, NOW - timedelta(hours=2), AppointmentStatus.CONFIRMED)
    within_grace = w.appointments.add(PATIENT.id, DOCTOR.id, NOW - timedelta(minutes=10), AppointmentStatus.CONFIRMED)
    pending = w.appointments.add(OTHER_PATIENT.id, DOCTOR.id, NOW - timedelta(hours=3), AppointmentStatus.PENDING)
    svc = MaintenanceService(w.appointments, w.dispatcher, no_show_grace_minutes=30)

    assert await svc.mark_no_shows(now=NOW) == 1
    assert w.appointments.get_by_id(overdue.id).status == AppointmentStatus.NO_SHOW
    assert w.appointments.get_by_id(within_grace.id).status == AppointmentStatus.CONFIRMED
    assert w.appointments.get_by_id(pending.id).status == AppointmentStatus.PENDING
    assert "appointment_no_show" in w.notifications.types_for(PATIENT.id)
    assert w.gateway.refunds == 0

    # Second run finds nothing left to do
    assert await svc.mark_no_shows(now=NOW) == 0


@pytest.mark.asyncio
async def test_reminders_cover_tomorrow_only():
    w = World()
    tomorrow = w.appointments.add(PATIENT.id, DOCTOR.id, datetime(2030, 5, 7, 9, 0), AppointmentStatus.CONFIRMED)
    w.appointments.add(PATIENT.id, DOCTOR.id, datetime(2030, 5, 8, 0, 0), AppointmentStatus.CONFIRMED)
    w.appointments.add(OTHER_PATIENT.id, DOCTOR.id, datetime(2030, 5, 7, 11, 0), AppointmentStatus.PENDING)
    svc = MaintenanceService(w.appointments, w.dispatcher)

    assert await svc.send_reminders(now=NOW) == 1
    reminders = [n for n in w.notifications.rows if n.type == "appointment_reminder"]
    assert {n.appointment_id for n in reminders} == {tomorrow.id}
    assert {n.user_id for n in reminders} == {PATIENT.id, DOCTOR.id}
