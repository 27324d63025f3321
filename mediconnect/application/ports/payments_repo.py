from dataclasses import dataclass
from typing import Protocol, List, Optional, Iterable, Tuple
from datetime import datetime

from ..status import PaymentStatus, RefundStatus


@dataclass
class PaymentDto:
    id: int
    appointment_id: int
    amount: float
    currency: str
    status: PaymentStatus
    provider_order_id: Optional[str] = None
    payer_id: Optional[str] = None
    capture_id: Optional[str] = None
    payment_method: Optional[str] = None
    processor_response_code: Optional[str] = None
    processor_response_message: Optional[str] = None
    merchant_id: Optional[str] = None
    payment_timestamp: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    attempt_count: int = 0
    refund_id: Optional[str] = None
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refund_status: Optional[RefundStatus] = None
    refund_amount: Optional[float] = None
    refund_processor_response: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentsRepository(Protocol):
    def create(self, appointment_id: int, amount: float, currency: str, provider_order_id: str, attempt_count: int,
               ip_address: Optional[str], user_agent: Optional[str], request_id: Optional[str]) -> PaymentDto:
        ...

    def get_by_id(self, payment_id: int) -> Optional[PaymentDto]:
        ...

    def get_by_order_id(self, order_id: str) -> Optional[PaymentDto]:
        ...

    def get_by_capture_id(self, capture_id: str) -> Optional[PaymentDto]:
        ...

    def get_by_refund_id(self, refund_id: str) -> Optional[PaymentDto]:
        ...

    def latest_for_appointment(self, appointment_id: int) -> Optional[PaymentDto]:
        ...

    def refundable_for_appointment(self, appointment_id: int) -> Optional[PaymentDto]:
        """The captured payment (COMPLETED or REFUND_FAILED) for the appointment, if any."""
        ...

    def count_for_appointment(self, appointment_id: int) -> int:
        ...

    def update(self, payment_id: int, expected_statuses: Optional[Iterable[PaymentStatus]] = None, **changes) -> Optional[PaymentDto]:
        """Apply changes; when expected_statuses is given, only if the stored status is one of them."""
        ...

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
        ...
