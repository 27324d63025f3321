# mediconnect/db/models/payments/payment.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime

from ....application.status import PaymentStatus, RefundStatus
from ....utils import utcnow


class Payment(SQLModel, table=True):
    __tablename__ = "payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    amount: float
    currency: str = Field(default="USD", max_length=8)
    status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)

    # Provider correlation
    provider_order_id: Optional[str] = Field(default=None, index=True, unique=True)
    payer_id: Optional[str] = None
    capture_id: Optional[str] = Field(default=None, index=True)
    payment_method: Optional[str] = None
    processor_response_code: Optional[str] = None
    processor_response_message: Optional[str] = None
    merchant_id: Optional[str] = None
    payment_timestamp: Optional[datetime] = None

    # Request metadata
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    attempt_count: int = Field(default=0)

    # Refund details
    refund_id: Optional[str] = Field(default=None, index=True)
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refund_status: Optional[RefundStatus] = Field(default=None, index=True)
    refund_amount: Optional[float] = None
    refund_processor_response: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
