import logging
from dataclasses import dataclass
from typing import Optional

from ..ports.appointments_repo import AppointmentsRepository
from ..ports.audit_logger import AuditLogger
from ..ports.payment_gateway import PaymentGateway, PaymentProviderError
from ..ports.payments_repo import PaymentsRepository, PaymentDto
from ..status import PaymentStatus, RefundStatus, NotificationType
from ...exceptions import NotFoundError, InvalidStateError, ExternalProviderError
from ...utils import utcnow
from .notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

# REFUND_FAILED is retryable
REFUNDABLE_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.REFUND_FAILED)


@dataclass
class RefundResult:
    payment_id: int
    refund_id: str
    status: str
    amount: float
    currency: str


@dataclass
class RefundsService:
    payments: PaymentsRepository
    appointments: AppointmentsRepository
    gateway: PaymentGateway
    dispatcher: NotificationDispatcher
    audit: Optional[AuditLogger] = None

    async def process_refund(self, appointment_id: int, reason: str) -> RefundResult:
        # Later uncaptured orders must not hide the captured one
        payment = self.payments.refundable_for_appointment(appointment_id)
        if payment is None:
            latest = self.payments.latest_for_appointment(appointment_id)
            if not latest:
                raise NotFoundError("Payment not found for this appointment")
            if latest.status == PaymentStatus.REFUNDED:
                raise InvalidStateError("Payment has already been refunded")
            raise InvalidStateError(f"Payment in status {latest.status.value} cannot be refunded")
        if not payment.capture_id:
            raise InvalidStateError(f"Payment {payment.id} has no capture to refund")

        logger.info(f"Processing refund for payment {payment.id}")
        try:
            refund = await self.gateway.refund_capture(
                payment.capture_id,
                payment.amount,
                payment.currency,
                note=f"Refund for cancelled appointment: {reason}",
            )
        except PaymentProviderError as e:
            failed = self._mark_refund_failed(payment, reason, e.message)
            self._audit("refund_failed", payment, success=False, details={"error": e.message})
            await self.dispatcher.payment_event(
                failed or payment, self.appointments.get_by_id(appointment_id), NotificationType.REFUND_FAILED
            )
            logger.error(f"Refund processing failed for payment {payment.id}: {e.message}")
            raise ExternalProviderError(f"Refund processing failed: {e.message}", details=e.details)

        refunded = self.payments.update(
            payment.id,
            expected_statuses=REFUNDABLE_STATUSES,
            status=PaymentStatus.REFUNDED,
            refund_id=refund.refund_id,
            refund_reason=reason,
            refunded_at=utcnow(),
            refund_status=RefundStatus.COMPLETED,
            refund_amount=payment.amount,
            refund_processor_response=refund.response_message or refund.status,
        )
        if refunded is None:
            # A concurrent refund landed first; the provider call above was for the same capture
            raise InvalidStateError("Payment has already been refunded")

        self._audit("refund_completed", refunded, details={"refund_id": refund.refund_id})
        await self.dispatcher.payment_event(
            refunded, self.appointments.get_by_id(appointment_id), NotificationType.REFUND_COMPLETED
        )
        logger.info(f"Refund processed successfully: {refund.refund_id}")
        return RefundResult(
            payment_id=refunded.id,
            refund_id=refund.refund_id,
            status=refunded.status.value,
            amount=refunded.refund_amount,
            currency=refunded.currency,
        )

    def _mark_refund_failed(self, payment: PaymentDto, reason: str, message: str) -> Optional[PaymentDto]:
        return self.payments.update(
            payment.id,
            expected_statuses=REFUNDABLE_STATUSES,
            status=PaymentStatus.REFUND_FAILED,
            refund_reason=reason,
            refund_status=RefundStatus.FAILED,
            refund_processor_response=message,
        )

    def _audit(self, action: str, payment: PaymentDto, success: bool = True, details: Optional[dict] = None) -> None:
        if self.audit is None:
            return
        self.audit.log(
            action,
            request_id=payment.request_id,
            ip_address=payment.ip_address,
            success=success,
            details={"payment_id": payment.id, "appointment_id": payment.appointment_id, **(details or {})},
        )
