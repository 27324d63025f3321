import json
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, Mapping

from ..ports.appointments_repo import AppointmentsRepository
from ..ports.payments_repo import PaymentsRepository, PaymentDto
from ..ports.webhook_verifier import WebhookVerifier
from ..status import AppointmentStatus, PaymentStatus, RefundStatus, NotificationType
from ...exceptions import APIException, ValidationError
from ...utils import utcnow
from .notification_dispatcher import NotificationDispatcher
from .payments_service import PaymentsService
from .refunds_service import REFUNDABLE_STATUSES, RefundsService

logger = logging.getLogger(__name__)

CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
CAPTURE_DENIED = "PAYMENT.CAPTURE.DENIED"
CAPTURE_REFUNDED = "PAYMENT.CAPTURE.REFUNDED"
REFUND_COMPLETED = "REFUND.COMPLETED"


@dataclass
class WebhookService:
    verifier: WebhookVerifier
    payments: PaymentsRepository
    appointments: AppointmentsRepository
    payments_service: PaymentsService
    refunds: RefundsService
    dispatcher: NotificationDispatcher

    async def handle(self, headers: Mapping[str, str], body: bytes) -> Dict[str, Any]:
        if not await self.verifier.verify(headers, body):
            logger.warning("Rejected webhook with invalid signature")
            raise ValidationError("Invalid webhook signature")

        try:
            event = json.loads(body)
        except (TypeError, ValueError):
            raise ValidationError("Invalid webhook payload")
        if not isinstance(event, dict):
            raise ValidationError("Invalid webhook payload")

        event_type = event.get("event_type")
        resource = event.get("resource") or {}
        if not isinstance(resource, dict):
            raise ValidationError("Invalid webhook resource")
        logger.info(f"Webhook received: {event_type} ({event.get('id')})")

        if event_type == CAPTURE_COMPLETED:
            payment = await self._capture_completed(resource)
        elif event_type == CAPTURE_DENIED:
            payment = await self._capture_denied(resource)
        elif event_type in (CAPTURE_REFUNDED, REFUND_COMPLETED):
            payment = await self._refunded(resource)
        else:
            logger.info(f"Ignoring webhook event type {event_type}")
            return {"event_type": event_type, "handled": False}

        return {"event_type": event_type, "handled": True, "payment_id": payment.id if payment else None}

    async def _capture_completed(self, resource: Dict[str, Any]) -> Optional[PaymentDto]:
        payment = self._payment_for_capture(resource)
        if payment is None:
            return None
        if payment.status == PaymentStatus.COMPLETED:
            logger.info(f"Payment {payment.id} already completed; webhook is a no-op")
            return payment

        completed = self.payments_service.mark_completed(
            payment,
            capture_id=resource.get("id"),
            payer_id=(resource.get("payer") or {}).get("payer_id"),
            response_code=(resource.get("processor_response") or {}).get("response_code"),
            response_message=resource.get("status"),
        )
        if completed is None:
            logger.info(f"Payment {payment.id} moved on before webhook completion; skipping")
            return self.payments.get_by_id(payment.id)

        appointment = self.appointments.get_by_id(completed.appointment_id)
        await self.dispatcher.payment_event(completed, appointment, NotificationType.PAYMENT_COMPLETED)
        if appointment is not None and appointment.status == AppointmentStatus.CANCELLED:
            return await self._refund_late_capture(completed)
        return completed

    async def _refund_late_capture(self, payment: PaymentDto) -> PaymentDto:
        logger.warning(f"Payment {payment.id} captured after appointment {payment.appointment_id} was cancelled; refunding")
        try:
            await self.refunds.process_refund(payment.appointment_id, "Payment captured after appointment was cancelled")
        except APIException as e:
            logger.error(f"Refund of late capture for payment {payment.id} failed: {e.detail}")
        return self.payments.get_by_id(payment.id)

    async def _capture_denied(self, resource: Dict[str, Any]) -> Optional[PaymentDto]:
        payment = self._payment_for_capture(resource)
        if payment is None:
            return None

        failed = self.payments.update(
            payment.id,
            expected_statuses=(PaymentStatus.PENDING, PaymentStatus.PROCESSING),
            status=PaymentStatus.FAILED,
            capture_id=resource.get("id") or payment.capture_id,
            processor_response_message=resource.get("status") or "DENIED",
        )
        if failed is None:
            logger.info(f"Payment {payment.id} is {payment.status.value}; denial ignored")
            return payment

        appointment = self.appointments.get_by_id(failed.appointment_id)
        if appointment is not None and appointment.status == AppointmentStatus.PENDING:
            reverted = self.appointments.update(appointment.id, appointment.version, status=AppointmentStatus.PENDING_PAYMENT)
            if reverted is None:
                logger.warning(f"Appointment {appointment.id} changed while reverting to pending_payment")
            else:
                appointment = reverted

        await self.dispatcher.payment_event(failed, appointment, NotificationType.PAYMENT_FAILED)
        return failed

    async def _refunded(self, resource: Dict[str, Any]) -> Optional[PaymentDto]:
        refund_id = resource.get("id")
        payment = self.payments.get_by_refund_id(refund_id) if refund_id else None
        if payment is None:
            capture_id = _capture_id_from_links(resource.get("links") or [])
            payment = self.payments.get_by_capture_id(capture_id) if capture_id else None
        if payment is None:
            logger.warning(f"No payment matches refund {refund_id}")
            return None
        if payment.status == PaymentStatus.REFUNDED:
            return payment

        amount = (resource.get("amount") or {}).get("value")
        refunded = self.payments.update(
            payment.id,
            expected_statuses=REFUNDABLE_STATUSES,
            status=PaymentStatus.REFUNDED,
            refund_id=refund_id,
            refund_reason=payment.refund_reason or resource.get("note_to_payer") or "Refunded by provider",
            refunded_at=utcnow(),
            refund_status=RefundStatus.COMPLETED,
            refund_amount=float(amount) if amount else payment.amount,
            refund_processor_response=resource.get("status"),
        )
        if refunded is None:
            logger.info(f"Payment {payment.id} is {payment.status.value}; refund event ignored")
            return payment

        await self.dispatcher.payment_event(
            refunded, self.appointments.get_by_id(refunded.appointment_id), NotificationType.REFUND_COMPLETED
        )
        return refunded

    def _payment_for_capture(self, resource: Dict[str, Any]) -> Optional[PaymentDto]:
        capture_id = resource.get("id")
        payment = self.payments.get_by_capture_id(capture_id) if capture_id else None
        if payment is None:
            order_id = ((resource.get("supplementary_data") or {}).get("related_ids") or {}).get("order_id")
            payment = self.payments.get_by_order_id(order_id) if order_id else None
        if payment is None:
            logger.warning(f"No payment matches capture {capture_id}")
        return payment


def _capture_id_from_links(links) -> Optional[str]:
    for link in links:
        href = link.get("href") or ""
        if link.get("rel") == "up" and "/captures/" in href:
            return href.rstrip("/").rsplit("/", 1)[-1]
    return None
