import base64
import binascii
import logging
import zlib
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

import aiohttp
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from ...application.ports.webhook_verifier import WebhookVerifier

logger = logging.getLogger(__name__)


class PayPalWebhookVerifier(WebhookVerifier):
    """Offline check of PayPal's webhook transmission signature.

    The signed message is ``transmission_id|transmission_time|webhook_id|crc32(body)``,
    signed with SHA256withRSA by the certificate behind ``paypal-cert-url``.
    """

    def __init__(self, webhook_id: str, max_age_seconds: int = 300, timeout_seconds: int = 10) -> None:
        self.webhook_id = webhook_id
        self.max_age_seconds = max_age_seconds
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._certs: Dict[str, x509.Certificate] = {}

    async def verify(self, headers: Mapping[str, str], body: bytes) -> bool:
        h = {k.lower(): v for k, v in headers.items()}
        transmission_id = h.get("paypal-transmission-id")
        transmission_time = h.get("paypal-transmission-time")
        signature = h.get("paypal-transmission-sig")
        cert_url = h.get("paypal-cert-url")
        auth_algo = h.get("paypal-auth-algo", "SHA256withRSA")

        if not self.webhook_id:
            logger.error("PAYPAL_WEBHOOK_ID is not configured; rejecting webhook")
            return False
        if not all([transmission_id, transmission_time, signature, cert_url]):
            logger.warning("Webhook is missing PayPal transmission headers")
            return False
        if auth_algo != "SHA256withRSA":
            logger.warning(f"Unsupported webhook auth algorithm: {auth_algo}")
            return False
        if not self.is_fresh(transmission_time):
            logger.warning(f"Stale webhook transmission {transmission_id} at {transmission_time}")
            return False
        if not is_paypal_cert_url(cert_url):
            logger.warning(f"Untrusted webhook certificate URL: {cert_url}")
            return False

        try:
            sig_bytes = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Webhook signature is not valid base64")
            return False

        try:
            cert = await self._certificate(cert_url)
        except (aiohttp.ClientError, ValueError) as e:
            logger.error(f"Failed to load PayPal webhook certificate: {e}")
            return False

        message = signed_message(transmission_id, transmission_time, self.webhook_id, body)
        try:
            cert.public_key().verify(sig_bytes, message, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature:
            logger.warning(f"Invalid signature on webhook transmission {transmission_id}")
            return False
        return True

    def is_fresh(self, transmission_time: str, now: Optional[datetime] = None) -> bool:
        try:
            sent = datetime.fromisoformat(transmission_time.replace("Z", "+00:00"))
        except ValueError:
            return False
        if sent.tzinfo is None:
            sent = sent.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return abs((now - sent).total_seconds()) <= self.max_age_seconds

    async def _certificate(self, url: str) -> x509.Certificate:
        cert = self._certs.get(url)
        if cert is not None:
            return cert
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(url) as response:
                if response.status != 200:
                    raise ValueError(f"certificate fetch returned HTTP {response.status}")
                pem = await response.read()
        cert = x509.load_pem_x509_certificate(pem)
        self._certs[url] = cert
        return cert


def signed_message(transmission_id: str, transmission_time: str, webhook_id: str, body: bytes) -> bytes:
    crc = zlib.crc32(body) & 0xFFFFFFFF
    return f"{transmission_id}|{transmission_time}|{webhook_id}|{crc}".encode()


def is_paypal_cert_url(url: str) -> bool:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    return parsed.scheme == "https" and (host == "paypal.com" or host.endswith(".paypal.com"))
