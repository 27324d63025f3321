from datetime import datetime, timedelta

import pytest

from mediconnect.application.status import AppointmentStatus, PaymentStatus, RefundStatus
from mediconnect.exceptions import ExternalProviderError, InvalidStateError, NotFoundError
from tests.fakes import DOCTOR, PATIENT, World


def _paid(w: World, status=PaymentStatus.COMPLETED):
    appt = w.appointments.add(PATIENT.id, DOCTOR.id, datetime.utcnow() + timedelta(days=5), AppointmentStatus.CONFIRMED)
    payment = w.payments.create(appt.id, 75.0, "USD", "ORDER-1", 1, None, None, None)
    w.payments.update(payment.id, status=status, capture_id="CAP-1")
    return appt, payment


@pytest.mark.asyncio
async def test_refund_full_amount():
    w = World()
    appt, payment = _paid(w)
    result = await w.refunds.process_refund(appt.id, "cancelled")

    stored = w.payments.get_by_id(payment.id)
    assert stored.status == PaymentStatus.REFUNDED
    assert stored.refund_status == RefundStatus.COMPLETED
    assert stored.refund_amount == stored.amount == 75.0
    assert result.refund_id == "REF-CAP-1"
    assert "refund_completed" in w.notifications.types_for(PATIENT.id)


@pytest.mark.asyncio
async def test_refund_requires_completed_payment():
    w = World()
    appt, payment = _paid(w, status=PaymentStatus.PENDING)
    with pytest.raises(InvalidStateError):
        await w.refunds.process_refund(appt.id, "cancelled")
    assert w.payments.get_by_id(payment.id).status == PaymentStatus.PENDING
    assert w.gateway.refunds == 0


@pytest.mark.asyncio
async def test_refund_twice_is_rejected():
    w = World()
    appt, _ = _paid(w)
    await w.refunds.process_refund(appt.id, "cancelled")
    with pytest.raises(InvalidStateError):
        await w.refunds.process_refund(appt.id, "again")
    assert w.gateway.refunds == 1


@pytest.mark.asyncio
async def test_refund_without_payment():
    w = World()
    with pytest.raises(NotFoundError):
        await w.refunds.process_refund(42, "nothing")


@pytest.mark.asyncio
async def test_provider_failure_marks_refund_failed_and_can_retry():
    w = World()
    appt, payment = _paid(w)
    w.gateway.fail_refund = True
    with pytest.raises(ExternalProviderError):
        await w.refunds.process_refund(appt.id, "cancelled")

    failed = w.payments.get_by_id(payment.id)
    assert failed.status == PaymentStatus.REFUND_FAILED
    assert failed.refund_status == RefundStatus.FAILED
    assert "refund_failed" in w.notifications.types_for(PATIENT.id)

    w.gateway.fail_refund = False
    await w.refunds.process_refund(appt.id, "retry")
    assert w.payments.get_by_id(payment.id).status == PaymentStatus.REFUNDED
