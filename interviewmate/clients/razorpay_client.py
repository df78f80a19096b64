"""
interviewmate/clients/razorpay_client.py — Razorpay Orders API and signature checks
Gateway failures surface as ServiceUnavailableError; a payment result is never
fabricated.
"""
from __future__ import annotations

import hashlib
import hmac
from functools import lru_cache
from typing import Any, Optional

import httpx
from loguru import logger

from interviewmate.config import get_settings
from interviewmate.core import logging as app_logging
from interviewmate.core.errors import ServiceUnavailableError


def _hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayClient:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str = "",
        base_url: str = "https://api.razorpay.com/v1",
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.key_id = key_id
        self._key_secret = key_secret
        self._webhook_secret = webhook_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self._key_secret)

    @property
    def webhook_configured(self) -> bool:
        return bool(self._webhook_secret)

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """
        Create a gateway order. `amount` is in major units; Razorpay expects
        the smallest currency unit.
        """
        if not self.configured:
            raise ServiceUnavailableError("Payment service")

        payload = {
            "amount": amount * 100,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                auth=(self.key_id, self._key_secret),
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post("/orders", json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            app_logging.log_error("razorpay_client", "create_order", exc, {
                "status_code": exc.response.status_code,
            })
            raise ServiceUnavailableError("Payment service") from exc
        except httpx.HTTPError as exc:
            logger.error(f"Razorpay order creation failed: {exc}")
            raise ServiceUnavailableError("Payment service") from exc

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Checkout signature is HMAC-SHA256("{order_id}|{payment_id}") under the key secret."""
        if not self._key_secret:
            return False
        expected = _hmac_sha256(self._key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return hmac.compare_digest(expected, signature or "")

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not self._webhook_secret or not signature:
            return False
        expected = _hmac_sha256(self._webhook_secret, body)
        return hmac.compare_digest(expected, signature)


@lru_cache()
def get_razorpay_client() -> RazorpayClient:
    settings = get_settings()
    configured = settings.payments_configured
    return RazorpayClient(
        key_id=settings.razorpay_key_id if configured else "",
        key_secret=settings.razorpay_key_secret if configured else "",
        webhook_secret=settings.razorpay_webhook_secret,
        base_url=settings.razorpay_base_url,
        timeout_seconds=settings.razorpay_timeout_seconds,
    )
