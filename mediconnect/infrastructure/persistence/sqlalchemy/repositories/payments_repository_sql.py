from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, update
from sqlmodel import Session, select

from .....db.models import Payment
from .....application.ports.payments_repo import PaymentsRepository, PaymentDto
from .....application.status import PaymentStatus, RefundStatus
from .....utils import utcnow


class SqlPaymentsRepository(PaymentsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, p: Payment) -> PaymentDto:
        return PaymentDto(
            id=p.id,
            appointment_id=p.appointment_id,
            amount=p.amount,
            currency=p.currency,
            status=PaymentStatus(p.status),
            provider_order_id=p.provider_order_id,
            payer_id=p.payer_id,
            capture_id=p.capture_id,
            payment_method=p.payment_method,
            processor_response_code=p.processor_response_code,
            processor_response_message=p.processor_response_message,
            merchant_id=p.merchant_id,
            payment_timestamp=p.payment_timestamp,
            ip_address=p.ip_address,
            user_agent=p.user_agent,
            request_id=p.request_id,
            attempt_count=p.attempt_count,
            refund_id=p.refund_id,
            refund_reason=p.refund_reason,
            refunded_at=p.refunded_at,
            refund_status=RefundStatus(p.refund_status) if p.refund_status else None,
            refund_amount=p.refund_amount,
            refund_processor_response=p.refund_processor_response,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )

    def _first(self, *conditions) -> Optional[PaymentDto]:
        query = select(Payment)
        for condition in conditions:
            query = query.where(condition)
        p = self.session.exec(query.order_by(Payment.created_at.desc(), Payment.id.desc())).first()
        return self._to_dto(p) if p else None

    def create(self, appointment_id: int, amount: float, currency: str, provider_order_id: str, attempt_count: int,
               ip_address: Optional[str], user_agent: Optional[str], request_id: Optional[str]) -> PaymentDto:
        p = Payment(
            appointment_id=appointment_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            provider_order_id=provider_order_id,
            attempt_count=attempt_count,
            ip_address=ip_address,
            user_agent=user_agent,
            request_id=request_id,
        )
        self.session.add(p)
        self.session.commit()
        self.session.refresh(p)
        return self._to_dto(p)

    def get_by_id(self, payment_id: int) -> Optional[PaymentDto]:
        p = self.session.get(Payment, payment_id, populate_existing=True)
        return self._to_dto(p) if p else None

    def get_by_order_id(self, order_id: str) -> Optional[PaymentDto]:
        return self._first(Payment.provider_order_id == order_id)

    def get_by_capture_id(self, capture_id: str) -> Optional[PaymentDto]:
        return self._first(Payment.capture_id == capture_id)

    def get_by_refund_id(self, refund_id: str) -> Optional[PaymentDto]:
        return self._first(Payment.refund_id == refund_id)

    def latest_for_appointment(self, appointment_id: int) -> Optional[PaymentDto]:
        return self._first(Payment.appointment_id == appointment_id)

    def refundable_for_appointment(self, appointment_id: int) -> Optional[PaymentDto]:
        return self._first(
            Payment.appointment_id == appointment_id,
            Payment.status.in_([PaymentStatus.COMPLETED, PaymentStatus.REFUND_FAILED]),
        )

    def count_for_appointment(self, appointment_id: int) -> int:
        return self.session.exec(
            select(func.count()).select_from(Payment).where(Payment.appointment_id == appointment_id)
        ).one()

    def update(self, payment_id: int, expected_statuses: Optional[Iterable[PaymentStatus]] = None, **changes) -> Optional[PaymentDto]:
        stmt = update(Payment).where(Payment.id == payment_id)
        if expected_statuses is not None:
            stmt = stmt.where(Payment.status.in_(list(expected_statuses)))
        result = self.session.execute(stmt.values(**changes, updated_at=utcnow()))
        self.session.commit()
        if result.rowcount != 1:
            return None
        return self.get_by_id(payment_id)

    def search(
        self,
        appointment_ids: Optional[Iterable[int]] = None,
        statuses: Optional[Iterable[PaymentStatus]] = None,
        refund_status: Optional[RefundStatus] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        refunded_from: Optional[datetime] = None,
        refunded_to: Optional[datetime] = None,
        order_by_refunded: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[PaymentDto], int]:
        conditions = []
        if appointment_ids is not None:
            conditions.append(Payment.appointment_id.in_(list(appointment_ids)))
        if statuses:
            conditions.append(Payment.status.in_(list(statuses)))
        if refund_status is not None:
            conditions.append(Payment.refund_status == refund_status)
        if created_from is not None:
            conditions.append(Payment.created_at >= created_from)
        if created_to is not None:
            conditions.append(Payment.created_at <= created_to)
        if refunded_from is not None:
            conditions.append(Payment.refunded_at >= refunded_from)
        if refunded_to is not None:
            conditions.append(Payment.refunded_at <= refunded_to)

        count_query = select(func.count()).select_from(Payment)
        query = select(Payment)
        for condition in conditions:
            count_query = count_query.where(condition)
            query = query.where(condition)
        total = self.session.exec(count_query).one()

        order = Payment.refunded_at.desc() if order_by_refunded else Payment.created_at.desc()
        query = query.order_by(order, Payment.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [self._to_dto(p) for p in self.session.exec(query).all()], total
