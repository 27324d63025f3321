import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List, Iterable

from ..ports.appointments_repo import AppointmentsRepository
from ..ports.audit_logger import AuditLogger
from ..ports.payment_gateway import PaymentGateway, PaymentProviderError
from ..ports.payments_repo import PaymentsRepository, PaymentDto
from ..status import AppointmentStatus, PaymentStatus, RefundStatus, Role, NotificationType, PAYABLE_STATUSES
from ...exceptions import (
    AuthorizationError,
    ExternalProviderError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ...utils import utcnow
from .notification_dispatcher import NotificationDispatcher
from ..principal import Principal

logger = logging.getLogger(__name__)


@dataclass
class OrderResult:
    payment_id: int
    order_id: str
    status: str
    links: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class CaptureResult:
    success: bool
    payment_id: Optional[int] = None
    status: Optional[str] = None
    capture_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    already_captured: bool = False
    error: Optional[str] = None
    details: Any = None


@dataclass
class PaymentsService:
    payments: PaymentsRepository
    appointments: AppointmentsRepository
    gateway: PaymentGateway
    dispatcher: NotificationDispatcher
    currency: str = "USD"
    audit: Optional[AuditLogger] = None

    async def create_order(self, appointment_id: int, requester: Principal, amount: float, metadata: Optional[Dict[str, Any]] = None) -> OrderResult:
        metadata = metadata or {}
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        appointment = self.appointments.get_by_id(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        if requester.role != Role.PATIENT or appointment.patient_id != requester.id:
            raise AuthorizationError("Not authorized to pay for this appointment")
        if appointment.status not in PAYABLE_STATUSES:
            logger.error(f"Invalid appointment status for payment: {appointment.status.value}")
            raise InvalidStateError("Appointment must be in pending_payment or pending status to process payment")
        if self.payments.refundable_for_appointment(appointment.id) is not None:
            raise InvalidStateError("Appointment has already been paid")

        description = f"Appointment on {appointment.date_time.strftime('%Y-%m-%d')}"
        try:
            order = await self.gateway.create_order(amount, self.currency, description, reference_id=str(appointment.id))
        except PaymentProviderError as e:
            logger.error(f"Payment order creation failed: {e.message}")
            self._audit("order_failed", requester.id, metadata, success=False, details={"appointment_id": appointment_id, "error": e.message})
            raise ExternalProviderError(f"Payment order creation failed: {e.message}", details=e.details)

        payment = self.payments.create(
            appointment_id=appointment.id,
            amount=amount,
            currency=self.currency,
            provider_order_id=order.order_id,
            attempt_count=self.payments.count_for_appointment(appointment.id) + 1,
            ip_address=metadata.get("ip_address"),
            user_agent=metadata.get("user_agent"),
            request_id=metadata.get("request_id") or order.order_id,
        )

        if appointment.status == AppointmentStatus.PENDING_PAYMENT:
            moved = self.appointments.update(appointment.id, appointment.version, status=AppointmentStatus.PENDING)
            if moved is None:
                logger.warning(f"Appointment {appointment.id} changed while opening payment order {order.order_id}")

        self._audit("order_created", requester.id, metadata, details={"payment_id": payment.id, "order_id": order.order_id})
        logger.info(f"Payment order created: {payment.id} (order {order.order_id})")
        return OrderResult(payment_id=payment.id, order_id=order.order_id, status=order.status, links=order.links)

    async def capture_payment(self, order_id: str) -> CaptureResult:
        if not order_id:
            raise ValidationError("Order ID is required")
        logger.info(f"Attempting to capture payment for order: {order_id}")

        payment = self.payments.get_by_order_id(order_id)
        if not payment:
            logger.error(f"Payment record not found for order: {order_id}")
            raise NotFoundError("Payment record not found")
        if payment.status == PaymentStatus.COMPLETED:
            logger.info(f"Order {order_id} already captured; skipping")
            return self._captured_result(payment, already_captured=True)
        if payment.status != PaymentStatus.PENDING:
            return CaptureResult(success=False, payment_id=payment.id, status=payment.status.value,
                                 error=f"Payment in status {payment.status.value} cannot be captured")
        appointment = self.appointments.get_by_id(payment.appointment_id)
        if appointment is None or appointment.status == AppointmentStatus.CANCELLED:
            logger.warning(f"Refusing capture for order {order_id}: appointment is cancelled")
            return CaptureResult(success=False, payment_id=payment.id, status=payment.status.value,
                                 error="Appointment is cancelled; payment cannot be captured")

        try:
            capture = await self.gateway.capture_order(order_id)
        except PaymentProviderError as e:
            logger.error(f"PayPal capture error for order {order_id}: {e.message}")
            return CaptureResult(success=False, payment_id=payment.id, status=payment.status.value,
                                 error=f"PayPal capture failed: {e.message}", details=e.details)

        if capture.status != "COMPLETED":
            logger.error(f"Capture for order {order_id} returned status {capture.status}")
            return CaptureResult(success=False, payment_id=payment.id, status=payment.status.value,
                                 error=f"Capture failed with status: {capture.status}")

        completed = self.mark_completed(payment, capture_id=capture.capture_id, payer_id=capture.payer_id,
                                        payment_method=capture.payment_method, merchant_id=capture.merchant_id,
                                        response_code=capture.response_code, response_message=capture.response_message)
        if completed is None:
            # The webhook won the race; report the stored capture
            return self._captured_result(self.payments.get_by_id(payment.id), already_captured=True)

        await self.dispatcher.payment_event(completed, self.appointments.get_by_id(completed.appointment_id), NotificationType.PAYMENT_COMPLETED)
        logger.info(f"Payment captured successfully: {order_id}")
        return self._captured_result(completed)

    def mark_completed(self, payment: PaymentDto, capture_id: Optional[str], payer_id: Optional[str] = None,
                       payment_method: Optional[str] = "PayPal", merchant_id: Optional[str] = None,
                       response_code: Optional[str] = None, response_message: Optional[str] = None) -> Optional[PaymentDto]:
        """PENDING/PROCESSING -> COMPLETED; None if another path already moved it."""
        completed = self.payments.update(
            payment.id,
            expected_statuses=(PaymentStatus.PENDING, PaymentStatus.PROCESSING),
            status=PaymentStatus.COMPLETED,
            capture_id=capture_id or payment.capture_id,
            payer_id=payer_id or payment.payer_id,
            payment_method=payment_method or payment.payment_method,
            merchant_id=merchant_id or payment.merchant_id,
            processor_response_code=response_code,
            processor_response_message=response_message,
            payment_timestamp=utcnow(),
        )
        if completed is not None:
            self._audit("payment_captured", None, {"request_id": payment.request_id, "ip_address": payment.ip_address},
                        details={"payment_id": payment.id, "capture_id": completed.capture_id})
        return completed

    def _captured_result(self, payment: PaymentDto, already_captured: bool = False) -> CaptureResult:
        return CaptureResult(
            success=True,
            payment_id=payment.id,
            status=payment.status.value,
            capture_id=payment.capture_id,
            amount=payment.amount,
            currency=payment.currency,
            already_captured=already_captured,
        )

    # Read views

    def get_payment(self, payment_id: int, principal: Principal) -> PaymentDto:
        payment = self.payments.get_by_id(payment_id)
        if not payment:
            raise NotFoundError("Payment not found")
        appointment = self.appointments.get_by_id(payment.appointment_id)
        if principal.role != Role.ADMIN and (appointment is None or principal.id not in (appointment.patient_id, appointment.doctor_id)):
            raise AuthorizationError("Not authorized to view this payment")
        return payment

    def history(self, principal: Principal, start: Optional[datetime] = None, end: Optional[datetime] = None,
                status: Optional[PaymentStatus] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit = max(page, 1), max(min(limit, 100), 1)
        payments, total = self.payments.search(
            appointment_ids=self._scoped_appointment_ids(principal),
            statuses=[status] if status else None,
            created_from=start,
            created_to=end,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return {"payments": payments, "pagination": _pagination(page, limit, total)}

    def refunds(self, principal: Principal, start: Optional[datetime] = None, end: Optional[datetime] = None,
                refund_status: Optional[RefundStatus] = None, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit = max(page, 1), max(min(limit, 100), 1)
        refunds, total = self.payments.search(
            appointment_ids=self._scoped_appointment_ids(principal),
            statuses=[PaymentStatus.REFUNDED],
            refund_status=refund_status,
            refunded_from=start,
            refunded_to=end,
            order_by_refunded=True,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return {"refunds": refunds, "pagination": _pagination(page, limit, total)}

    def pending(self, principal: Principal) -> List[PaymentDto]:
        payments, _ = self.payments.search(
            appointment_ids=self._scoped_appointment_ids(principal),
            statuses=[PaymentStatus.PENDING],
        )
        return payments

    def analytics(self, principal: Principal, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
        payments, _ = self.payments.search(
            appointment_ids=self._scoped_appointment_ids(principal),
            created_from=start,
            created_to=end,
        )
        overall = _summarize(payments)
        overall["failed_payments"] = sum(1 for p in payments if p.status == PaymentStatus.FAILED)

        by_month: Dict[tuple, List[PaymentDto]] = defaultdict(list)
        methods: Dict[str, Dict[str, Any]] = {}
        for p in payments:
            by_month[(p.created_at.year, p.created_at.month)].append(p)
            if p.status == PaymentStatus.COMPLETED:
                entry = methods.setdefault(p.payment_method or "unknown", {"method": p.payment_method or "unknown", "count": 0, "total_amount": 0.0})
                entry["count"] += 1
                entry["total_amount"] += p.amount

        monthly = [
            {"year": year, "month": month, **_summarize(rows)}
            for (year, month), rows in sorted(by_month.items(), reverse=True)
        ]
        return {
            "overall": overall,
            "monthly_trends": monthly,
            "payment_methods": list(methods.values()),
            "last_updated": utcnow(),
        }

    def _scoped_appointment_ids(self, principal: Principal) -> Optional[List[int]]:
        if principal.role == Role.PATIENT:
            return [a.id for a in self.appointments.search(patient_id=principal.id)]
        if principal.role == Role.DOCTOR:
            return [a.id for a in self.appointments.search(doctor_id=principal.id)]
        return None

    def _audit(self, action: str, user_id: Optional[str], metadata: Dict[str, Any], success: bool = True, details: Optional[dict] = None) -> None:
        if self.audit is None:
            return
        self.audit.log(
            action,
            user_id=user_id,
            request_id=metadata.get("request_id"),
            ip_address=metadata.get("ip_address"),
            success=success,
            details=details,
        )


def _summarize(payments: Iterable[PaymentDto]) -> Dict[str, Any]:
    payments = list(payments)
    return {
        "total_amount": sum(p.amount for p in payments),
        "total_payments": len(payments),
        "successful_payments": sum(1 for p in payments if p.status == PaymentStatus.COMPLETED),
        "refunded_amount": sum(p.refund_amount or 0 for p in payments if p.status == PaymentStatus.REFUNDED),
    }


def _pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"current": page, "total": (total + limit - 1) // limit, "total_records": total}
