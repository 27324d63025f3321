from dataclasses import dataclass, field
from typing import Protocol, List, Dict, Any, Optional


class PaymentProviderError(Exception):
    """Raised by gateway adapters when the provider rejects or fails a call."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


@dataclass
class ProviderOrder:
    order_id: str
    status: str
    links: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ProviderCapture:
    status: str
    capture_id: Optional[str] = None
    payer_id: Optional[str] = None
    amount: Optional[str] = None
    currency: Optional[str] = None
    payment_method: str = "PayPal"
    merchant_id: Optional[str] = None
    response_code: Optional[str] = None
    response_message: Optional[str] = None


@dataclass
class ProviderRefund:
    refund_id: str
    status: str
    response_message: Optional[str] = None


class PaymentGateway(Protocol):
    async def create_order(self, amount: float, currency: str, description: str, reference_id: str) -> ProviderOrder:
        ...

    async def capture_order(self, order_id: str) -> ProviderCapture:
        ...

    async def refund_capture(self, capture_id: str, amount: float, currency: str, note: str) -> ProviderRefund:
        ...
