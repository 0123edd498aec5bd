"""Stripe payment integration client.

Uses the real Stripe API when a valid key is configured, otherwise
falls back to mock payment responses for development.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from ninofi.common.exceptions import ExternalServiceError
from ninofi.config import settings
from ninofi.integrations.base import BaseIntegration


def _is_mock() -> bool:
    return settings.STRIPE_SECRET_KEY.startswith("mock_")


class StripeClient(BaseIntegration):
    """Payment client with real Stripe API and mock fallback."""

    BASE_URL = "https://api.stripe.com/v1"

    def __init__(self) -> None:
        super().__init__("stripe")

    @property
    def is_mock(self) -> bool:
        return _is_mock()

    def _headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {settings.STRIPE_SECRET_KEY}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def health_check(self) -> bool:
        if _is_mock():
            self.logger.info("Stripe health check: OK (mock)")
            return True
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(f"{self.BASE_URL}/balance", headers=self._headers())
                return resp.status_code == 200
        except httpx.HTTPError as e:
            self.logger.error("Stripe health check failed: %s", e)
            return False

    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str = "usd",
        payment_method_type: str = "card",
        description: str = "",
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        if not _is_mock():
            payload: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency,
                "description": description,
                "payment_method_types[]": payment_method_type,
            }
            for k, v in (metadata or {}).items():
                payload[f"metadata[{k}]"] = v
            try:
                async with httpx.AsyncClient(timeout=30) as client:
                    resp = await client.post(
                        f"{self.BASE_URL}/payment_intents",
                        headers=self._headers(idempotency_key),
                        data=payload,
                    )
                    resp.raise_for_status()
            except httpx.HTTPError as e:
                self.logger.error("Payment intent creation failed: %s", e)
                raise ExternalServiceError("stripe", str(e)) from e
            data = resp.json()
            self.logger.info("Created payment intent: %s ($%.2f)", data["id"], amount_cents / 100)
            return data

        pi_id = f"pi_{uuid.uuid4().hex[:24]}"
        self.logger.info("Mock payment intent: %s ($%.2f)", pi_id, amount_cents / 100)
        return {
            "id": pi_id,
            "object": "payment_intent",
            "amount": amount_cents,
            "currency": currency,
            "status": "succeeded",
            "client_secret": f"{pi_id}_secret_{uuid.uuid4().hex[:12]}",
            "description": description,
            "metadata": metadata or {},
            "created": int(datetime.now(timezone.utc).timestamp()),
        }

    async def _post(self, path: str, payload: dict[str, Any], idempotency_key: str | None = None) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=30) as client:
                resp = await client.post(
                    f"{self.BASE_URL}/{path}", headers=self._headers(idempotency_key), data=payload
                )
                resp.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.error("Stripe POST /%s failed: %s", path, e)
            raise ExternalServiceError("stripe", str(e)) from e
        return resp.json()

    # ---------- Connect (contractor payouts) ----------

    async def create_connect_account(self, email: str, metadata: dict[str, str] | None = None) -> dict[str, Any]:
        if not _is_mock():
            payload: dict[str, Any] = {
                "type": "express",
                "email": email,
                "capabilities[transfers][requested]": "true",
            }
            for k, v in (metadata or {}).items():
                payload[f"metadata[{k}]"] = v
            data = await self._post("accounts", payload)
            self.logger.info("Created connected account: %s", data["id"])
            return data

        acct_id = f"acct_{uuid.uuid4().hex[:16]}"
        self.logger.info("Mock connected account: %s", acct_id)
        return {
            "id": acct_id,
            "object": "account",
            "email": email,
            "charges_enabled": False,
            "payouts_enabled": False,
            "details_submitted": False,
            "metadata": metadata or {},
        }

    async def create_account_link(self, account_id: str, return_url: str, refresh_url: str) -> dict[str, Any]:
        if not _is_mock():
            return await self._post("account_links", {
                "account": account_id,
                "return_url": return_url,
                "refresh_url": refresh_url,
                "type": "account_onboarding",
            })

        now = int(datetime.now(timezone.utc).timestamp())
        return {
            "object": "account_link",
            "url": f"https://connect.stripe.com/setup/mock/{account_id}",
            "created": now,
            "expires_at": now + 300,
        }

    async def retrieve_account(self, account_id: str) -> dict[str, Any]:
        if not _is_mock():
            try:
                async with httpx.AsyncClient(timeout=30) as client:
                    resp = await client.get(f"{self.BASE_URL}/accounts/{account_id}", headers=self._headers())
                    resp.raise_for_status()
            except httpx.HTTPError as e:
                self.logger.error("Account lookup failed: %s", e)
                raise ExternalServiceError("stripe", str(e)) from e
            return resp.json()

        # Mock onboarding completes as soon as the link is issued
        return {
            "id": account_id,
            "object": "account",
            "charges_enabled": True,
            "payouts_enabled": True,
            "details_submitted": True,
        }

    async def create_transfer(
        self,
        amount_cents: int,
        destination: str,
        currency: str = "usd",
        description: str = "",
        metadata: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        if not _is_mock():
            payload: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency,
                "destination": destination,
                "description": description,
            }
            for k, v in (metadata or {}).items():
                payload[f"metadata[{k}]"] = v
            data = await self._post("transfers", payload, idempotency_key)
            self.logger.info("Created transfer: %s ($%.2f -> %s)", data["id"], amount_cents / 100, destination)
            return data

        tr_id = f"tr_{uuid.uuid4().hex[:24]}"
        self.logger.info("Mock transfer: %s ($%.2f -> %s)", tr_id, amount_cents / 100, destination)
        return {
            "id": tr_id,
            "object": "transfer",
            "amount": amount_cents,
            "currency": currency,
            "destination": destination,
            "description": description,
            "metadata": metadata or {},
            "created": int(datetime.now(timezone.utc).timestamp()),
        }
