from datetime import datetime, timedelta

import pytest

from mediconnect.application.status import AppointmentStatus, PaymentStatus
from mediconnect.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from tests.fakes import DOCTOR, OTHER_DOCTOR, PATIENT, OTHER_PATIENT, World


def future(days: int = 10, hour: int = 9, minute: int = 0) -> datetime:
    base = datetime.utcnow() + timedelta(days=days)
    return base.replace(hour=hour, minute=minute, second=0, microsecond=0)


@pytest.mark.asyncio
async def test_create_starts_pending_payment_and_notifies_both():
    w = World()
    appt = await w.appointments_service.create(PATIENT, DOCTOR.id, future(), "annual checkup")
    assert appt.status == AppointmentStatus.PENDING_PAYMENT
    assert appt.duration == 30
    assert "appointment_created" in w.notifications.types_for(DOCTOR.id)
    assert "appointment_created" in w.notifications.types_for(PATIENT.id)


@pytest.mark.asyncio
async def test_create_rejects_bad_input():
    w = World()
    with pytest.raises(ValidationError):
        await w.appointments_service.create(PATIENT, DOCTOR.id, datetime.utcnow() - timedelta(hours=1), "late")
    with pytest.raises(ValidationError):
        await w.appointments_service.create(PATIENT, DOCTOR.id, future(), "   ")
    with pytest.raises(NotFoundError):
        await w.appointments_service.create(PATIENT, OTHER_PATIENT.id, future(), "not a doctor")
    with pytest.raises(AuthorizationError):
        await w.appointments_service.create(DOCTOR, OTHER_DOCTOR.id, future(), "doctors cannot book")
    assert w.appointments.rows == {}


@pytest.mark.asyncio
async def test_create_conflicts_with_overlapping_active_booking():
    w = World()
    w.appointments.add(OTHER_PATIENT.id, DOCTOR.id, future(hour=9), AppointmentStatus.CONFIRMED)
    with pytest.raises(ConflictError):
        await w.appointments_service.create(PATIENT, DOCTOR.id, future(hour=9, minute=15), "overlap")
    # Back-to-back is fine
    appt = await w.appointments_service.create(PATIENT, DOCTOR.id, future(hour=9, minute=30), "next slot")
    assert appt.status == AppointmentStatus.PENDING_PAYMENT


@pytest.mark.asyncio
async def test_only_doctor_can_confirm():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.PENDING)
    with pytest.raises(AuthorizationError):
        await w.appointments_service.update_status(appt.id, PATIENT, "confirmed")
    assert w.appointments.get_by_id(appt.id).status == AppointmentStatus.PENDING

    result = await w.appointments_service.update_status(appt.id, DOCTOR, "confirmed")
    assert result.appointment.status == AppointmentStatus.CONFIRMED
    assert "appointment_confirmed" in w.notifications.types_for(PATIENT.id)


@pytest.mark.asyncio
async def test_non_participant_cannot_update():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.PENDING)
    with pytest.raises(AuthorizationError):
        await w.appointments_service.update_status(appt.id, OTHER_DOCTOR, "confirmed")
    with pytest.raises(AuthorizationError):
        await w.appointments_service.update_status(appt.id, OTHER_PATIENT, "cancelled")


@pytest.mark.asyncio
@pytest.mark.parametrize("start,target", [
    (AppointmentStatus.COMPLETED, "cancelled"),
    (AppointmentStatus.CANCELLED, "confirmed"),
    (AppointmentStatus.PENDING_PAYMENT, "completed"),
    (AppointmentStatus.PENDING, "no_show"),
])
async def test_illegal_transition_leaves_state_unchanged(start, target):
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), start)
    with pytest.raises(InvalidStateError):
        await w.appointments_service.update_status(appt.id, DOCTOR, target)
    assert w.appointments.get_by_id(appt.id).status == start


@pytest.mark.asyncio
async def test_unknown_or_internal_status_is_rejected():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.PENDING)
    with pytest.raises(ValidationError):
        await w.appointments_service.update_status(appt.id, DOCTOR, "teleported")
    with pytest.raises(ValidationError):
        await w.appointments_service.update_status(appt.id, DOCTOR, "pending_payment")


@pytest.mark.asyncio
async def test_update_status_missing_appointment():
    w = World()
    with pytest.raises(NotFoundError):
        await w.appointments_service.update_status(999, DOCTOR, "confirmed")


@pytest.mark.asyncio
async def test_lost_race_is_reported_as_invalid_state():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.PENDING)
    original_get = w.appointments.get_by_id

    def stale_get(appointment_id):
        stale = original_get(appointment_id)
        # Someone else writes between our read and our write
        w.appointments.update(appointment_id, stale.version, cancellation_reason="concurrent")
        return stale

    w.appointments.get_by_id = stale_get
    with pytest.raises(InvalidStateError):
        await w.appointments_service.update_status(appt.id, DOCTOR, "confirmed")
    assert original_get(appt.id).status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_without_payment_skips_refund():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.PENDING_PAYMENT)
    result = await w.appointments_service.update_status(appt.id, PATIENT, "cancelled", "changed my mind")
    assert result.appointment.status == AppointmentStatus.CANCELLED
    assert result.appointment.cancelled_by == "patient"
    assert result.appointment.cancellation_reason == "changed my mind"
    assert result.refund is None and result.refund_error is None
    assert w.gateway.refunds == 0


@pytest.mark.asyncio
async def test_cancel_commits_even_when_refund_fails():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.CONFIRMED)
    payment = w.payments.create(appt.id, 50.0, "USD", "ORDER-X", 1, None, None, None)
    w.payments.update(payment.id, status=PaymentStatus.COMPLETED, capture_id="CAP-X")
    w.gateway.fail_refund = True

    result = await w.appointments_service.update_status(appt.id, DOCTOR, "cancelled", "doctor sick")
    assert result.appointment.status == AppointmentStatus.CANCELLED
    assert result.appointment.cancelled_by == "doctor"
    assert result.refund is None
    assert "CAPTURE_FULLY_REFUNDED" in result.refund_error
    assert "manually" in result.message
    assert w.payments.get_by_id(payment.id).status == PaymentStatus.REFUND_FAILED


@pytest.mark.asyncio
async def test_cancel_refunds_captured_payment_behind_newer_order():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.PENDING)
    paid = w.payments.create(appt.id, 50.0, "USD", "ORDER-PAID", 1, None, None, None)
    w.payments.update(paid.id, status=PaymentStatus.COMPLETED, capture_id="CAP-PAID")
    # An abandoned order opened afterwards is the newest row
    w.payments.create(appt.id, 50.0, "USD", "ORDER-OPEN", 2, None, None, None)

    result = await w.appointments_service.update_status(appt.id, PATIENT, "cancelled", "scheduling conflict")
    assert result.refund is not None
    assert result.refund.payment_id == paid.id
    assert w.payments.get_by_id(paid.id).status == PaymentStatus.REFUNDED
    assert w.gateway.refunds == 1


@pytest.mark.asyncio
async def test_refund_followed_by_lost_cancel_write_is_logged(caplog):
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.CONFIRMED)
    payment = w.payments.create(appt.id, 50.0, "USD", "ORDER-Y", 1, None, None, None)
    w.payments.update(payment.id, status=PaymentStatus.COMPLETED, capture_id="CAP-Y")
    original_update = w.appointments.update

    def losing_update(appointment_id, expected_version, **changes):
        if changes.get("status") == AppointmentStatus.CANCELLED:
            return None
        return original_update(appointment_id, expected_version, **changes)

    w.appointments.update = losing_update
    with pytest.raises(InvalidStateError):
        await w.appointments_service.update_status(appt.id, PATIENT, "cancelled", "conflict")

    assert w.payments.get_by_id(payment.id).status == PaymentStatus.REFUNDED
    assert any(r.levelname == "ERROR" and "manual review" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_reschedule_moves_to_pending_and_records_origin():
    w = World()
    original = future(hour=9)
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, original, AppointmentStatus.CONFIRMED)
    new_time = future(days=11, hour=14)

    updated = await w.appointments_service.request_reschedule(appt.id, PATIENT, new_time, "travel")
    assert updated.status == AppointmentStatus.PENDING
    assert updated.date_time == new_time
    assert updated.rescheduled_from == original
    assert "appointment_rescheduled" in w.notifications.types_for(DOCTOR.id)


@pytest.mark.asyncio
async def test_reschedule_onto_confirmed_slot_conflicts():
    w = World()
    original = future(hour=9)
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, original, AppointmentStatus.PENDING)
    w.appointments.add(OTHER_PATIENT.id, DOCTOR.id, future(hour=11), AppointmentStatus.CONFIRMED)

    with pytest.raises(ConflictError):
        await w.appointments_service.request_reschedule(appt.id, PATIENT, future(hour=11, minute=10), "later")
    stored = w.appointments.get_by_id(appt.id)
    assert stored.date_time == original
    assert stored.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_reschedule_guards():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.PENDING)
    with pytest.raises(AuthorizationError):
        await w.appointments_service.request_reschedule(appt.id, OTHER_PATIENT, future(days=12), None)
    with pytest.raises(ValidationError):
        await w.appointments_service.request_reschedule(appt.id, PATIENT, datetime.utcnow() - timedelta(days=1), None)

    done = w.appointments.add(PATIENT.id, DOCTOR.id, future(days=3), AppointmentStatus.COMPLETED)
    with pytest.raises(InvalidStateError):
        await w.appointments_service.request_reschedule(done.id, PATIENT, future(days=12), None)


def test_rating_requires_completed():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.CONFIRMED)
    with pytest.raises(InvalidStateError):
        w.appointments_service.add_rating(appt.id, PATIENT, 5, "great")
    assert w.appointments.get_by_id(appt.id).rating is None


def test_rating_overwrites_for_owner_only():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.COMPLETED)
    with pytest.raises(AuthorizationError):
        w.appointments_service.add_rating(appt.id, OTHER_PATIENT, 1)

    w.appointments_service.add_rating(appt.id, PATIENT, 3, "ok")
    rated = w.appointments_service.add_rating(appt.id, PATIENT, 5, "better", is_anonymous=True)
    assert rated.rating == {"score": 5, "feedback": "better", "is_anonymous": True}


def test_rating_score_bounds():
    w = World()
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.COMPLETED)
    with pytest.raises(ValidationError):
        w.appointments_service.add_rating(appt.id, PATIENT, 6)


def test_views_are_scoped_to_caller():
    w = World()
    mine = w.appointments.add(PATIENT.id, DOCTOR.id, future(days=2), AppointmentStatus.CONFIRMED)
    w.appointments.add(OTHER_PATIENT.id, DOCTOR.id, future(days=3), AppointmentStatus.PENDING)
    w.appointments.add(OTHER_PATIENT.id, OTHER_DOCTOR.id, future(days=4), AppointmentStatus.PENDING)

    assert [a.id for a in w.appointments_service.list_for_user(PATIENT)] == [mine.id]
    assert len(w.appointments_service.list_for_user(DOCTOR)) == 2
    with pytest.raises(AuthorizationError):
        w.appointments_service.get_for_user(mine.id, OTHER_PATIENT)


def test_history_is_past_only_newest_first():
    w = World()
    old = w.appointments.add(PATIENT.id, DOCTOR.id, datetime.utcnow() - timedelta(days=10), AppointmentStatus.COMPLETED)
    older = w.appointments.add(PATIENT.id, DOCTOR.id, datetime.utcnow() - timedelta(days=20), AppointmentStatus.CANCELLED)
    w.appointments.add(PATIENT.id, DOCTOR.id, future(), AppointmentStatus.CONFIRMED)
    assert [a.id for a in w.appointments_service.history(PATIENT)] == [old.id, older.id]


def test_doctor_schedule_groups_by_date():
    w = World()
    day = future(days=2)
    a = w.appointments.add(PATIENT.id, DOCTOR.id, day.replace(hour=9), AppointmentStatus.CONFIRMED)
    b = w.appointments.add(OTHER_PATIENT.id, DOCTOR.id, day.replace(hour=10), AppointmentStatus.PENDING)

    result = w.appointments_service.doctor_schedule(DOCTOR, view="week")
    assert [x.id for x in result["schedule"][day.date().isoformat()]] == [a.id, b.id]
    with pytest.raises(AuthorizationError):
        w.appointments_service.doctor_schedule(PATIENT)


def test_stats_counts():
    w = World()
    w.appointments.add(PATIENT.id, DOCTOR.id, future(days=1), AppointmentStatus.CONFIRMED)
    cancelled = w.appointments.add(PATIENT.id, DOCTOR.id, future(days=2), AppointmentStatus.CANCELLED)
    w.appointments.update(cancelled.id, cancelled.version, cancelled_by="patient")
    done = w.appointments.add(PATIENT.id, DOCTOR.id, future(days=3), AppointmentStatus.COMPLETED)
    w.appointments.update(done.id, done.version, rating_score=4)

    stats = w.appointments_service.stats(PATIENT)
    assert stats["total"] == 3
    assert stats["by_status"]["confirmed"] == 1
    assert stats["cancelled_by"] == {"patient": 1, "doctor": 0}
    assert stats["average_rating"] == 4
    assert stats["total_rated"] == 1
