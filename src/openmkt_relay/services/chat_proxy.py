"""Authenticated proxy for chat reads against a user's PDS.

The PDS forwards ``chat.bsky.*`` calls to the chat service when the
``Atproto-Proxy`` header names it. When a stored session exists for the
caller, its (possibly fresher) access token is used and refreshed once on
an authentication failure.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

import httpx

from openmkt_relay.core.settings import settings
from openmkt_relay.services.chat_sessions import ChatSessionStore
from openmkt_relay.services.refresh import call_with_refresh

logger = logging.getLogger(__name__)

LIST_CONVOS: Final[str] = "chat.bsky.convo.listConvos"
GET_MESSAGES: Final[str] = "chat.bsky.convo.getMessages"
AUTH_ERROR_CODES: Final[frozenset[str]] = frozenset(
    {"ExpiredToken", "InvalidToken", "AuthenticationRequired", "AuthMissing"}
)
HTTP_BAD_REQUEST: Final[int] = 400
HTTP_UNAUTHORIZED: Final[int] = 401


def is_auth_failure(response: httpx.Response) -> bool:
    """Return True if an XRPC response signals a missing or expired token."""
    if response.status_code == HTTP_UNAUTHORIZED:
        return True
    if response.status_code != HTTP_BAD_REQUEST:
        return False
    try:
        payload = response.json()
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("error") in AUTH_ERROR_CODES


def bearer(token: str) -> str:
    return f"Bearer {token}"


@dataclass(frozen=True)
class ProxyResponse:
    """Upstream status and body, preserved verbatim."""

    status_code: int
    text: str
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> ProxyResponse:
        data: Any = None
        if response.is_success and response.content:
            try:
                data = response.json()
            except ValueError:
                data = None
        return cls(status_code=response.status_code, text=response.text, data=data)


class ChatProxy:
    """Forwards chat GET requests on behalf of a caller."""

    def __init__(
        self,
        store: ChatSessionStore,
        client: httpx.AsyncClient,
        *,
        proxy_header: str | None = None,
    ) -> None:
        self.store = store
        self._client = client
        self.proxy_header = proxy_header or settings.chat_proxy_header

    async def resolve_did(self, endpoint: str, authorization: str) -> str | None:
        """Best-effort lookup of the caller's DID; None on any failure."""
        try:
            response = await self._client.get(
                f"{endpoint}/xrpc/com.atproto.server.getSession",
                headers={"Authorization": authorization},
            )
        except httpx.HTTPError as exc:
            logger.debug("Session introspection failed: %s", exc)
            return None
        if not response.is_success:
            return None
        try:
            did = response.json().get("did")
        except (ValueError, AttributeError):
            return None
        return did if isinstance(did, str) and did else None

    async def refresh(self, did: str) -> str | None:
        """Exchange the stored refresh token for ``did``.

        On success the store is updated and the new Authorization value is
        returned. A rejected refresh evicts the stored session.
        """
        record = self.store.get(did)
        if record is None or not record.refresh_jwt:
            return None

        endpoint = record.pds_endpoint.rstrip("/")
        try:
            response = await self._client.post(
                f"{endpoint}/xrpc/com.atproto.server.refreshSession",
                headers={"Authorization": bearer(record.refresh_jwt)},
            )
        except httpx.HTTPError as exc:
            logger.warning("Refresh for %s failed: %s", did, exc)
            return None

        if not response.is_success:
            logger.info(
                "Refresh for %s rejected (%d); evicting stored session",
                did,
                response.status_code,
            )
            self.store.remove(did)
            return None

        try:
            payload = response.json()
            access_jwt = payload.get("accessJwt")
        except (ValueError, AttributeError):
            logger.warning("Refresh for %s returned an unreadable body", did)
            return None
        if not access_jwt:
            return None
        self.store.update(
            did,
            access_jwt=access_jwt,
            refresh_jwt=payload.get("refreshJwt") or record.refresh_jwt,
        )
        return bearer(access_jwt)

    async def forward(
        self,
        pds_endpoint: str,
        authorization: str,
        method: str,
        params: Mapping[str, Any] | None = None,
    ) -> ProxyResponse:
        """Proxy a chat XRPC GET through the caller's PDS.

        Raises:
            httpx.HTTPError: On transport failure of the proxied request.
        """
        endpoint = pds_endpoint.rstrip("/")
        did = await self.resolve_did(endpoint, authorization)

        credential = authorization
        if did:
            record = self.store.get(did)
            if record is not None and record.access_jwt:
                credential = bearer(record.access_jwt)

        async def fetch(auth: str) -> httpx.Response:
            return await self._client.get(
                f"{endpoint}/xrpc/{method}",
                params=dict(params or {}),
                headers={"Authorization": auth, "Atproto-Proxy": self.proxy_header},
            )

        response = await call_with_refresh(
            fetch,
            credential,
            refresh=functools.partial(self.refresh, did) if did else None,
            is_auth_failure=is_auth_failure,
        )
        if not response.is_success:
            logger.warning("[Proxy] %s failed: %d %s", method, response.status_code, response.text)
        return ProxyResponse.from_httpx(response)
