from enum import Enum
from typing import Dict, FrozenSet


class Role(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


class AppointmentStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    # Audit marker only; a reschedule lands the appointment back in PENDING
    RESCHEDULED = "rescheduled"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    REFUND_FAILED = "REFUND_FAILED"


class RefundStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PENDING = "PENDING"


class NotificationType(str, Enum):
    APPOINTMENT_CREATED = "appointment_created"
    APPOINTMENT_PENDING = "appointment_pending"
    APPOINTMENT_CONFIRMED = "appointment_confirmed"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    APPOINTMENT_COMPLETED = "appointment_completed"
    APPOINTMENT_NO_SHOW = "appointment_no_show"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    APPOINTMENT_REMINDER = "appointment_reminder"
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    REFUND_COMPLETED = "refund_completed"
    REFUND_FAILED = "refund_failed"
    SCHEDULE_UPDATED = "schedule_updated"


A = AppointmentStatus

ACTIVE_STATUSES: FrozenSet[AppointmentStatus] = frozenset({A.PENDING_PAYMENT, A.PENDING, A.CONFIRMED})
BOOKED_STATUSES: FrozenSet[AppointmentStatus] = frozenset({A.PENDING, A.CONFIRMED})
TERMINAL_STATUSES: FrozenSet[AppointmentStatus] = frozenset({A.CANCELLED, A.COMPLETED, A.NO_SHOW})
PAYABLE_STATUSES: FrozenSet[AppointmentStatus] = frozenset({A.PENDING_PAYMENT, A.PENDING})
RESCHEDULABLE_STATUSES: FrozenSet[AppointmentStatus] = frozenset({A.PENDING, A.CONFIRMED})

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    A.PENDING_PAYMENT: frozenset({A.PENDING, A.CANCELLED}),
    A.PENDING: frozenset({A.CONFIRMED, A.CANCELLED, A.PENDING_PAYMENT, A.RESCHEDULED}),
    A.CONFIRMED: frozenset({A.COMPLETED, A.CANCELLED, A.NO_SHOW, A.RESCHEDULED}),
    A.RESCHEDULED: frozenset({A.PENDING}),
    A.CANCELLED: frozenset(),
    A.COMPLETED: frozenset(),
    A.NO_SHOW: frozenset(),
}

# Statuses a participant may request through update_status, and who may set them
DOCTOR_ONLY_TARGETS: FrozenSet[AppointmentStatus] = frozenset({A.CONFIRMED, A.COMPLETED, A.NO_SHOW})
REQUESTABLE_TARGETS: FrozenSet[AppointmentStatus] = frozenset({A.CONFIRMED, A.COMPLETED, A.NO_SHOW, A.CANCELLED})


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return AppointmentStatus(target) in ALLOWED_TRANSITIONS.get(AppointmentStatus(current), frozenset())
