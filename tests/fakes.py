import copy
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from mediconnect.application.ports.appointments_repo import AppointmentDto
from mediconnect.application.ports.calendar_repo import CalendarDto
from mediconnect.application.ports.notifications_repo import NotificationDto
from mediconnect.application.ports.payment_gateway import (
    PaymentProviderError,
    ProviderCapture,
    ProviderOrder,
    ProviderRefund,
)
from mediconnect.application.ports.payments_repo import PaymentDto
from mediconnect.application.ports.user_repo import UserDto
from mediconnect.application.principal import Principal
from mediconnect.application.services.appointments_service import AppointmentsService
from mediconnect.application.services.calendar_service import CalendarService
from mediconnect.application.services.notification_dispatcher import NotificationDispatcher
from mediconnect.application.services.payments_service import PaymentsService
from mediconnect.application.services.refunds_service import RefundsService
from mediconnect.application.status import AppointmentStatus, PaymentStatus, Role

DOCTOR = Principal(id="doc-1", role=Role.DOCTOR)
OTHER_DOCTOR = Principal(id="doc-2", role=Role.DOCTOR)
PATIENT = Principal(id="pat-1", role=Role.PATIENT)
OTHER_PATIENT = Principal(id="pat-2", role=Role.PATIENT)
ADMIN = Principal(id="adm-1", role=Role.ADMIN)


class FakeUserRepo:
    def __init__(self):
        self.users: Dict[str, UserDto] = {
            DOCTOR.id: UserDto(DOCTOR.id, "Gregory", "House", "house@example.com", Role.DOCTOR, 50.0),
            OTHER_DOCTOR.id: UserDto(OTHER_DOCTOR.id, "Lisa", "Cuddy", "cuddy@example.com", Role.DOCTOR, 80.0),
            PATIENT.id: UserDto(PATIENT.id, "Jane", "Doe", "jane@example.com", Role.PATIENT),
            OTHER_PATIENT.id: UserDto(OTHER_PATIENT.id, "John", "Roe", "john@example.com", Role.PATIENT),
        }

    def get_by_id(self, user_id: str) -> Optional[UserDto]:
        return self.users.get(user_id)


class FakeAppointmentsRepo:
    def __init__(self):
        self.rows: Dict[int, AppointmentDto] = {}
        self._id = 1
        self.writes = 0

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        row = self.rows.get(appointment_id)
        return replace(row) if row else None

    def create(self, patient_id, doctor_id, date_time, duration, reason_for_visit) -> AppointmentDto:
        now = datetime.utcnow()
        row = AppointmentDto(
            id=self._id, patient_id=patient_id, doctor_id=doctor_id, date_time=date_time, duration=duration,
            status=AppointmentStatus.PENDING_PAYMENT, reason_for_visit=reason_for_visit,
            cancellation_reason=None, cancelled_by=None, rescheduled_from=None,
            rating_score=None, rating_feedback=None, rating_is_anonymous=False,
            version=1, created_at=now, updated_at=now,
        )
        self.rows[row.id] = row
        self._id += 1
        return replace(row)

    def add(self, patient_id, doctor_id, date_time, status, duration=30) -> AppointmentDto:
        row = self.create(patient_id, doctor_id, date_time, duration, "checkup")
        self.rows[row.id] = replace(self.rows[row.id], status=status)
        return self.get_by_id(row.id)

    def find_overlapping(self, doctor_id, start, end, statuses, exclude_id=None) -> List[AppointmentDto]:
        statuses = set(statuses)
        return [
            replace(a) for a in self.rows.values()
            if a.doctor_id == doctor_id and a.status in statuses and a.id != exclude_id
            and a.date_time < end and a.date_time + timedelta(minutes=a.duration) > start
        ]

    def search(self, patient_id=None, doctor_id=None, statuses=None, start=None, end=None, before=None, descending=False):
        statuses = set(statuses) if statuses else None
        rows = [
            a for a in self.rows.values()
            if (patient_id is None or a.patient_id == patient_id)
            and (doctor_id is None or a.doctor_id == doctor_id)
            and (statuses is None or a.status in statuses)
            and (start is None or a.date_time >= start)
            and (end is None or a.date_time <= end)
            and (before is None or a.date_time < before)
        ]
        rows.sort(key=lambda a: a.date_time, reverse=descending)
        return [replace(a) for a in rows]

    def update(self, appointment_id, expected_version, **changes) -> Optional[AppointmentDto]:
        row = self.rows.get(appointment_id)
        if row is None or row.version != expected_version:
            return None
        self.writes += 1
        self.rows[appointment_id] = replace(row, **changes, version=row.version + 1, updated_at=datetime.utcnow())
        return self.get_by_id(appointment_id)


class FakePaymentsRepo:
    def __init__(self):
        self.rows: Dict[int, PaymentDto] = {}
        self._id = 1
        self.writes = 0

    def create(self, appointment_id, amount, currency, provider_order_id, attempt_count, ip_address, user_agent, request_id):
        now = datetime.utcnow()
        row = PaymentDto(
            id=self._id, appointment_id=appointment_id, amount=amount, currency=currency,
            status=PaymentStatus.PENDING, provider_order_id=provider_order_id, attempt_count=attempt_count,
            ip_address=ip_address, user_agent=user_agent, request_id=request_id, created_at=now, updated_at=now,
        )
        self.rows[row.id] = row
        self._id += 1
        return replace(row)

    def _find(self, predicate) -> Optional[PaymentDto]:
        matches = [p for p in self.rows.values() if predicate(p)]
        return replace(max(matches, key=lambda p: p.id)) if matches else None

    def get_by_id(self, payment_id):
        row = self.rows.get(payment_id)
        return replace(row) if row else None

    def get_by_order_id(self, order_id):
        return self._find(lambda p: p.provider_order_id == order_id)

    def get_by_capture_id(self, capture_id):
        return self._find(lambda p: p.capture_id == capture_id)

    def get_by_refund_id(self, refund_id):
        return self._find(lambda p: p.refund_id == refund_id)

    def latest_for_appointment(self, appointment_id):
        return self._find(lambda p: p.appointment_id == appointment_id)

    def refundable_for_appointment(self, appointment_id):
        return self._find(lambda p: p.appointment_id == appointment_id
                          and p.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUND_FAILED))

    def count_for_appointment(self, appointment_id):
        return sum(1 for p in self.rows.values() if p.appointment_id == appointment_id)

    def update(self, payment_id, expected_statuses=None, **changes):
        row = self.rows.get(payment_id)
        if row is None:
            return None
        if expected_statuses is not None and row.status not in set(expected_statuses):
            return None
        self.writes += 1
        self.rows[payment_id] = replace(row, **changes, updated_at=datetime.utcnow())
        return self.get_by_id(payment_id)

    def search(self, appointment_ids=None, statuses=None, refund_status=None, created_from=None, created_to=None,
               refunded_from=None, refunded_to=None, order_by_refunded=False, offset=0, limit=None):
        ids = set(appointment_ids) if appointment_ids is not None else None
        statuses = set(statuses) if statuses else None
        rows = [
            p for p in self.rows.values()
            if (ids is None or p.appointment_id in ids)
            and (statuses is None or p.status in statuses)
            and (refund_status is None or p.refund_status == refund_status)
        ]
        rows.sort(key=lambda p: p.id, reverse=True)
        total = len(rows)
        rows = rows[offset:offset + limit] if limit is not None else rows[offset:]
        return [replace(p) for p in rows], total


class FakeNotificationsRepo:
    def __init__(self):
        self.rows: List[NotificationDto] = []

    def create(self, user_id, title, message, type, appointment_id=None, payment_id=None):
        n = NotificationDto(len(self.rows) + 1, user_id, title, message, type, appointment_id, payment_id, False, datetime.utcnow())
        self.rows.append(n)
        return n

    def list_for_user(self, user_id, is_read=None, limit=50, offset=0):
        rows = [n for n in self.rows if n.user_id == user_id and (is_read is None or n.is_read == is_read)]
        return rows[offset:offset + limit]

    def mark_read(self, notification_id, user_id):
        for n in self.rows:
            if n.id == notification_id and n.user_id == user_id:
                n.is_read = True
                return True
        return False

    def types_for(self, user_id) -> List[str]:
        return [n.type for n in self.rows if n.user_id == user_id]


class FakeCalendarRepo:
    def __init__(self):
        self.rows: Dict[str, CalendarDto] = {}
        self.saves = 0

    def get(self, doctor_id):
        row = self.rows.get(doctor_id)
        return copy.deepcopy(row) if row else None

    def save(self, calendar):
        stored = copy.deepcopy(calendar)
        for group in [d.slots for d in stored.schedule] + [w.slots for w in stored.default_working_hours]:
            for slot in group:
                if slot.id is None:
                    slot.id = str(uuid.uuid4())
        self.rows[stored.doctor_id] = stored
        self.saves += 1
        return copy.deepcopy(stored)


class FakeGateway:
    def __init__(self):
        self.orders = 0
        self.captures = 0
        self.refunds = 0
        self.fail_create = False
        self.fail_capture = False
        self.fail_refund = False
        self.capture_status = "COMPLETED"

    async def create_order(self, amount, currency, description, reference_id):
        if self.fail_create:
            raise PaymentProviderError("INVALID_REQUEST", details=[{"issue": "bad"}])
        self.orders += 1
        return ProviderOrder(order_id=f"ORDER-{self.orders}", status="CREATED",
                             links=[{"rel": "approve", "href": f"https://www.sandbox.paypal.com/checkoutnow?token=ORDER-{self.orders}"}])

    async def capture_order(self, order_id):
        if self.fail_capture:
            raise PaymentProviderError("UNPROCESSABLE_ENTITY", details=[{"issue": "INSTRUMENT_DECLINED"}])
        self.captures += 1
        return ProviderCapture(status=self.capture_status, capture_id=f"CAP-{order_id}", payer_id="PAYER-1",
                               amount="50.00", currency="USD", response_code="0000", response_message="COMPLETED")

    async def refund_capture(self, capture_id, amount, currency, note):
        if self.fail_refund:
            raise PaymentProviderError("CAPTURE_FULLY_REFUNDED")
        self.refunds += 1
        return ProviderRefund(refund_id=f"REF-{capture_id}", status="COMPLETED", response_message="COMPLETED")


class FakeEmail:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, to, subject, html):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((to, subject))


class RecordingBus:
    def __init__(self):
        self.events = []

    def subscribe(self, topic, handler):
        pass

    async def publish(self, topic, payload):
        self.events.append((topic, payload))


class FakeAudit:
    def __init__(self):
        self.entries = []

    def log(self, action, user_id=None, request_id=None, ip_address=None, success=True, details=None):
        self.entries.append((action, success))


class World:
    """All services wired against in-memory fakes."""

    def __init__(self, email_fails: bool = False):
        self.users = FakeUserRepo()
        self.appointments = FakeAppointmentsRepo()
        self.payments = FakePaymentsRepo()
        self.notifications = FakeNotificationsRepo()
        self.calendars = FakeCalendarRepo()
        self.gateway = FakeGateway()
        self.email = FakeEmail(fail=email_fails)
        self.bus = RecordingBus()
        self.audit = FakeAudit()
        self.dispatcher = NotificationDispatcher(self.notifications, self.users, email=self.email, events=self.bus)
        self.refunds = RefundsService(self.payments, self.appointments, self.gateway, self.dispatcher, audit=self.audit)
        self.appointments_service = AppointmentsService(self.appointments, self.users, self.payments, self.refunds, self.dispatcher)
        self.payments_service = PaymentsService(self.payments, self.appointments, self.gateway, self.dispatcher, audit=self.audit)
        self.calendar_service = CalendarService(self.calendars, self.appointments, self.dispatcher)
