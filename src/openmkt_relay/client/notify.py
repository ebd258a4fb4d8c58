"""HTTP client for the relay's interest notification endpoints."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from openmkt_relay.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429


@dataclass(frozen=True)
class NotifyOutcome:
    """Decoded answer of ``POST /api/v1/notify``."""

    status_code: int
    remaining_requests: int | None = None
    reset_in_minutes: int | None = None
    error: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def rate_limited(self) -> bool:
        return self.status_code == HTTP_TOO_MANY_REQUESTS


class NotifyClient:
    """Talks to a running relay service."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.http_timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self._client

    async def send_interest(
        self,
        *,
        seller_did: str,
        listing_title: str,
        buyer_handle: str,
        buyer_did: str,
        listing_path: str | None = None,
    ) -> NotifyOutcome:
        """Ask the relay to introduce the buyer to the seller.

        Raises:
            httpx.HTTPError: When the relay cannot be reached.
        """
        client = await self._ensure_client()
        response = await client.post(
            f"{self.base_url}/api/v1/notify",
            json={
                "sellerDid": seller_did,
                "listingTitle": listing_title,
                "listingPath": listing_path,
                "buyerHandle": buyer_handle,
                "buyerDid": buyer_did,
            },
        )
        try:
            payload: Any = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        outcome = NotifyOutcome(
            status_code=response.status_code,
            remaining_requests=payload.get("remainingRequests"),
            reset_in_minutes=payload.get("resetInMinutes"),
            error=payload.get("error"),
            message=payload.get("message"),
        )
        if not outcome.ok:
            logger.warning("Notify failed with %d: %s", outcome.status_code, outcome.error)
        return outcome

    async def status(self, buyer_did: str) -> dict[str, Any]:
        """Return the buyer's remaining allowance as reported by the relay."""
        client = await self._ensure_client()
        response = await client.get(
            f"{self.base_url}/api/v1/notify/status", params={"did": buyer_did}
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
            self._client = None
