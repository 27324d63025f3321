# mediconnect/schemas/payments/payment.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from ..common.common import RequestModel
from ...application.status import PaymentStatus, RefundStatus


class CreateOrderRequest(RequestModel):
    appointment_id: int
    amount: float = Field(gt=0)


class RefundRequest(RequestModel):
    reason: str = Field(min_length=1, max_length=500)


class OrderResponse(BaseModel):
    payment_id: int
    order_id: str
    status: str
    links: List[Dict[str, Any]] = []


class CaptureResponse(BaseModel):
    payment_id: Optional[int] = None
    status: Optional[str] = None
    capture_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    already_captured: bool = False


class RefundResponse(BaseModel):
    payment_id: int
    refund_id: str
    status: str
    amount: float
    currency: str


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    amount: float
    currency: str
    status: PaymentStatus
    provider_order_id: Optional[str] = None
    capture_id: Optional[str] = None
    payer_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_timestamp: Optional[datetime] = None
    attempt_count: int = 0
    refund_id: Optional[str] = None
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refund_status: Optional[RefundStatus] = None
    refund_amount: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
