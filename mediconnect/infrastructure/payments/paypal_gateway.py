import asyncio
import base64
import logging
import time
import uuid
from typing import Optional, Dict, Any

import aiohttp

from ...application.ports.payment_gateway import (
    PaymentGateway,
    PaymentProviderError,
    ProviderCapture,
    ProviderOrder,
    ProviderRefund,
)

logger = logging.getLogger(__name__)


class PayPalGateway(PaymentGateway):
    """PayPal Orders v2 / Payments v2 over REST."""

    def __init__(self, base_url: str, client_id: str, client_secret: str, timeout_seconds: int = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def _access_token(self, session: aiohttp.ClientSession) -> str:
        if self._token and time.time() < self._token_expires_at:
            return self._token
        if not self.client_id or not self.client_secret:
            raise PaymentProviderError("PayPal credentials are not configured")

        basic = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        async with session.post(
            f"{self.base_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {basic}", "Accept": "application/json"},
        ) as response:
            body = await response.json(content_type=None)
            if response.status != 200:
                logger.error(f"PayPal token request failed with status {response.status}")
                raise PaymentProviderError("Failed to authenticate with PayPal", details=body)

        if not body or not body.get("access_token"):
            raise PaymentProviderError("PayPal token response has no access_token", details=body)
        self._token = body["access_token"]
        # Refresh a minute early
        self._token_expires_at = time.time() + int(body.get("expires_in", 0)) - 60
        return self._token

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None,
                       request_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                token = await self._access_token(session)
                headers = {
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Prefer": "return=representation",
                }
                if request_id:
                    headers["PayPal-Request-Id"] = request_id
                async with session.request(method, f"{self.base_url}{path}", json=payload or {}, headers=headers) as response:
                    body = await response.json(content_type=None) or {}
                    if response.status >= 400:
                        message = body.get("message") or body.get("name") or f"HTTP {response.status}"
                        logger.error(f"PayPal {method} {path} failed: {message}")
                        raise PaymentProviderError(message, details=body.get("details") or body)
                    return body
        except aiohttp.ClientError as e:
            logger.error(f"PayPal request error on {path}: {e}")
            raise PaymentProviderError(f"PayPal request failed: {e}")
        except asyncio.TimeoutError:
            logger.error(f"PayPal request timed out on {path}")
            raise PaymentProviderError("PayPal request timed out")

    async def create_order(self, amount: float, currency: str, description: str, reference_id: str) -> ProviderOrder:
        body = await self._request("POST", "/v2/checkout/orders", {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": reference_id,
                "description": description,
                "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
            }],
        })
        return ProviderOrder(order_id=_required_id(body, "order"), status=body.get("status", "CREATED"), links=body.get("links", []))

    async def capture_order(self, order_id: str) -> ProviderCapture:
        body = await self._request("POST", f"/v2/checkout/orders/{order_id}/capture", request_id=f"capture-{order_id}")
        captures = ((body.get("purchase_units") or [{}])[0].get("payments") or {}).get("captures") or []
        capture = captures[0] if captures else {}
        amount = capture.get("amount") or {}
        processor = capture.get("processor_response") or {}
        return ProviderCapture(
            # A COMPLETED order can still hold a PENDING capture
            status=capture.get("status") or body.get("status", "UNKNOWN"),
            capture_id=capture.get("id"),
            payer_id=(body.get("payer") or {}).get("payer_id"),
            amount=amount.get("value"),
            currency=amount.get("currency_code"),
            merchant_id=(capture.get("payee") or {}).get("merchant_id"),
            response_code=processor.get("response_code"),
            response_message=capture.get("status"),
        )

    async def refund_capture(self, capture_id: str, amount: float, currency: str, note: str) -> ProviderRefund:
        body = await self._request("POST", f"/v2/payments/captures/{capture_id}/refund", {
            "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
            "note_to_payer": note[:255],
        }, request_id=f"refund-{capture_id}-{uuid.uuid4().hex}")
        return ProviderRefund(refund_id=_required_id(body, "refund"), status=body.get("status", "COMPLETED"), response_message=body.get("status"))


def _required_id(body: Dict[str, Any], kind: str) -> str:
    if not body.get("id"):
        logger.error(f"PayPal {kind} response has no id")
        raise PaymentProviderError(f"PayPal {kind} response has no id", details=body)
    return body["id"]
