"""
Paystack API Client

Initializes and verifies payments. Amounts cross this boundary in Naira;
Paystack itself works in kobo.
"""
import logging
from typing import Dict, Any, Optional

import httpx

from ..config import settings
from ..exceptions import PaystackAPIError
from ..models.payments import KOBO_PER_NAIRA

logger = logging.getLogger(__name__)


class PaystackClient:
    """Thin async wrapper over the Paystack transaction endpoints."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0
    ):
        self._secret_key = settings.paystack_secret_key if secret_key is None else secret_key
        self._base_url = (base_url or settings.paystack_base_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout

        if not self._secret_key:
            logger.warning("PAYSTACK_SECRET_KEY is not set in environment variables")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._secret_key}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Paystack {method} {path} failed: {e}")
            raise PaystackAPIError(f"Paystack request failed: {e}") from e

        if response.is_error:
            logger.error(f"Paystack API error: {response.status_code} {response.text[:200]}")
            raise PaystackAPIError(
                f"Paystack API error: {response.reason_phrase}",
                details={"status_code": response.status_code}
            )

        payload = response.json()
        if not payload.get("status"):
            raise PaystackAPIError(
                payload.get("message") or "Paystack returned status=false",
                details={"path": path}
            )
        return payload

    async def initialize_payment(
        self,
        amount: int,
        email: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Initialize a payment transaction.

        Args:
            amount: Amount in Naira
            email: Customer email
            metadata: Booking/event identifiers echoed back in the webhook

        Returns:
            Paystack `data` object: authorization_url, access_code, reference
        """
        payload = await self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": amount * KOBO_PER_NAIRA,
                "metadata": metadata or {},
                "callback_url": f"{settings.app_url.rstrip('/')}/payment/callback",
            },
        )
        return payload["data"]

    async def verify_payment(self, reference: str) -> Dict[str, Any]:
        """Fetch the gateway's view of a payment by reference."""
        return await self._request("GET", f"/transaction/verify/{reference}")
