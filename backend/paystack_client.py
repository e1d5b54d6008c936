"""
Paystack client singleton.

Thin async wrapper over the Paystack REST API. Every call returns the
envelope's `data` member on success and raises PaystackError otherwise, so
services never touch raw HTTP responses.
"""
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from config import settings
from exceptions import PaystackError

logger = logging.getLogger(__name__)


class PaystackClient:
    """Singleton Paystack API client."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(PaystackClient, cls).__new__(cls)
        return cls._instance

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {settings.paystack_secret_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        url = f"{settings.paystack_base_url.rstrip('/')}{path}"
        try:
            async with httpx.AsyncClient(timeout=timeout or settings.paystack_timeout_seconds) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self._headers(),
                    json=json,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Paystack {method} {path} timed out: {e}")
            raise PaystackError("Payment service timeout", is_timeout=True)
        except httpx.RequestError as e:
            logger.error(f"Paystack {method} {path} unreachable: {e}")
            raise PaystackError("Payment service unreachable", is_network=True)

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or not body.get("status"):
            message = body.get("message") or f"Paystack returned HTTP {response.status_code}"
            logger.error(f"Paystack {method} {path} failed ({response.status_code}): {message}")
            raise PaystackError(message, status_code=response.status_code, payload=body)

        return body.get("data")

    # ── Transactions ─────────────────────────────────────────────────

    async def initialize_transaction(
        self,
        *,
        email: str,
        amount_kobo: int,
        reference: str,
        callback_url: str,
        metadata: Optional[dict] = None,
    ) -> dict:
        """Start a checkout; returns {authorization_url, access_code, reference}."""
        return await self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": amount_kobo,
                "reference": reference,
                "callback_url": callback_url,
                "metadata": metadata or {},
            },
        )

    async def verify_transaction(self, reference: str) -> dict:
        """Fetch the gateway's view of a transaction (status, amount, reference)."""
        return await self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")

    # ── Transfers ────────────────────────────────────────────────────

    async def create_transfer(
        self,
        *,
        amount_kobo: int,
        recipient: str,
        reason: str,
        reference: str,
    ) -> dict:
        """Pay out from the platform balance to a transfer recipient."""
        return await self._request(
            "POST",
            "/transfer",
            json={
                "source": "balance",
                "amount": amount_kobo,
                "recipient": recipient,
                "reason": reason,
                "reference": reference,
            },
            timeout=settings.paystack_transfer_timeout_seconds,
        )

    async def create_transfer_recipient(
        self,
        *,
        name: str,
        account_number: str,
        bank_code: str,
    ) -> dict:
        return await self._request(
            "POST",
            "/transferrecipient",
            json={
                "type": "nuban",
                "name": name,
                "account_number": account_number,
                "bank_code": bank_code,
                "currency": settings.paystack_currency,
            },
        )

    # ── Banks ────────────────────────────────────────────────────────

    async def list_banks(self) -> list[dict]:
        return await self._request(
            "GET",
            "/bank",
            params={
                "country": settings.paystack_country,
                "currency": settings.paystack_currency,
                "perPage": 100,
            },
        )

    async def resolve_account(self, *, account_number: str, bank_code: str) -> dict:
        """Resolve an account number to its registered name."""
        return await self._request(
            "GET",
            "/bank/resolve",
            params={"account_number": account_number, "bank_code": bank_code},
        )


# Global client instance
paystack_client = PaystackClient()
