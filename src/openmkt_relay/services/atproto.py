"""Minimal AT Protocol XRPC agent.

Only the handful of XRPC methods the relay needs are implemented:

- session creation and refresh
- profile lookup and handle resolution
- follow record creation
- service-auth token minting for the chat service
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Final

import httpx
from jose import JWTError, jwt

from openmkt_relay.core.settings import settings

logger = logging.getLogger(__name__)

PDS_SERVICE_ID: Final[str] = "#atproto_pds"
PDS_SERVICE_TYPE: Final[str] = "AtprotoPersonalDataServer"
FOLLOW_COLLECTION: Final[str] = "app.bsky.graph.follow"
# Treat tokens this close to expiry as already expired.
EXPIRY_LEEWAY_SECONDS: Final[int] = 30


class AtprotoError(RuntimeError):
    """Base exception for AT Protocol agent failures."""


class NoSessionError(AtprotoError):
    """Raised when an authenticated call is attempted without a session."""


class XrpcError(AtprotoError):
    """Raised when an XRPC endpoint answers with a non-success status."""

    def __init__(
        self,
        method: str,
        status_code: int,
        *,
        error: str | None = None,
        message: str | None = None,
        body: str = "",
    ) -> None:
        super().__init__(f"{method} failed with {status_code}: {error or body or 'no body'}")
        self.method = method
        self.status_code = status_code
        self.error = error
        self.message = message
        self.body = body

    @classmethod
    def from_response(cls, method: str, response: httpx.Response) -> XrpcError:
        error: str | None = None
        message: str | None = None
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            error = payload.get("error")
            message = payload.get("message")
        return cls(method, response.status_code, error=error, message=message, body=response.text)


def jwt_expiry(token: str) -> float | None:
    """Return the ``exp`` claim of a JWT without verifying its signature."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, (int, float)):
        return float(exp)
    return None


def token_expired(token: str, now: float | None = None) -> bool:
    """Return True when the token carries an ``exp`` claim that has passed."""
    expires_at = jwt_expiry(token)
    if expires_at is None:
        return False
    current = time.time() if now is None else now
    return expires_at - EXPIRY_LEEWAY_SECONDS <= current


def pds_endpoint_from_did_doc(did_doc: Mapping[str, Any] | None, default: str) -> str:
    """Pick the PDS endpoint advertised in a DID document.

    Args:
        did_doc: DID document returned with a session, if any.
        default: Endpoint used when the document names no PDS service.

    Returns:
        The ``serviceEndpoint`` of the first ``#atproto_pds`` service entry.
    """
    services: Sequence[Mapping[str, Any]] = (did_doc or {}).get("service") or []
    for service in services:
        service_id = str(service.get("id") or "")
        if service_id.endswith(PDS_SERVICE_ID) or service.get("type") == PDS_SERVICE_TYPE:
            endpoint = service.get("serviceEndpoint")
            if isinstance(endpoint, str) and endpoint:
                return endpoint
    return default


@dataclass(frozen=True)
class AtprotoSession:
    """Authenticated session returned by createSession/refreshSession."""

    did: str
    handle: str
    access_jwt: str
    refresh_jwt: str | None
    pds_endpoint: str

    @property
    def expires_at(self) -> float | None:
        return jwt_expiry(self.access_jwt)

    def is_expired(self, now: float | None = None) -> bool:
        return token_expired(self.access_jwt, now)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], default_endpoint: str) -> AtprotoSession:
        return cls(
            did=payload["did"],
            handle=payload.get("handle", ""),
            access_jwt=payload["accessJwt"],
            refresh_jwt=payload.get("refreshJwt"),
            pds_endpoint=pds_endpoint_from_did_doc(payload.get("didDoc"), default_endpoint),
        )


class AtprotoAgent:
    """HTTP client wrapper for the XRPC methods used by the relay."""

    def __init__(
        self,
        service_url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.service_url = (service_url or settings.primary_service_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.http_timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()
        self._session: AtprotoSession | None = None

    @property
    def session(self) -> AtprotoSession | None:
        return self._session

    @property
    def did(self) -> str | None:
        return self._session.did if self._session else None

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self._client

    @dataclass
    class RequestParams:
        """Parameters for a single XRPC call."""
        method: str
        nsid: str
        params: Mapping[str, Any] | Sequence[tuple[str, Any]] | None = None
        json_data: Any | None = None
        token: str | None = None
        base_url: str | None = None

    def _base_url(self) -> str:
        if self._session is not None:
            return self._session.pds_endpoint.rstrip("/")
        return self.service_url

    async def _request(self, params: RequestParams) -> httpx.Response:
        client = await self._ensure_client()
        headers: dict[str, str] = {}
        if params.token:
            headers["Authorization"] = f"Bearer {params.token}"
        base_url = (params.base_url or self._base_url()).rstrip("/")

        start_time = time.time()
        response = await client.request(
            params.method,
            f"{base_url}/xrpc/{params.nsid}",
            params=params.params,
            json=params.json_data,
            headers=headers,
        )
        logger.debug(
            "%s %s -> %d (%.0f ms)",
            params.method,
            params.nsid,
            response.status_code,
            (time.time() - start_time) * 1000,
        )
        return response

    async def _xrpc(self, params: RequestParams) -> dict[str, Any]:
        response = await self._request(params)
        if not response.is_success:
            raise XrpcError.from_response(params.nsid, response)
        if not response.content:
            return {}
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    def _require_session(self) -> AtprotoSession:
        if self._session is None:
            raise NoSessionError("No authenticated AT Protocol session")
        return self._session

    def _access_token(self) -> str:
        return self._require_session().access_jwt

    async def login(self, identifier: str, password: str) -> AtprotoSession:
        """Create a session with handle/DID and (app) password."""
        payload = await self._xrpc(
            self.RequestParams(
                method="POST",
                nsid="com.atproto.server.createSession",
                json_data={"identifier": identifier, "password": password},
                base_url=self.service_url,
            )
        )
        self._session = AtprotoSession.from_payload(payload, self.service_url)
        logger.info("Logged in as %s (%s)", self._session.handle, self._session.did)
        return self._session

    async def refresh_session(self) -> AtprotoSession:
        """Exchange the refresh token for a new session."""
        if self._session is None or not self._session.refresh_jwt:
            raise NoSessionError("No refresh token available")
        current = self._session
        payload = await self._xrpc(
            self.RequestParams(
                method="POST",
                nsid="com.atproto.server.refreshSession",
                token=current.refresh_jwt,
            )
        )
        self._session = AtprotoSession(
            did=payload.get("did", current.did),
            handle=payload.get("handle", current.handle),
            access_jwt=payload["accessJwt"],
            refresh_jwt=payload.get("refreshJwt", current.refresh_jwt),
            pds_endpoint=pds_endpoint_from_did_doc(payload.get("didDoc"), current.pds_endpoint),
        )
        logger.info("Refreshed session for %s", self._session.did)
        return self._session

    async def get_profile(self, actor: str) -> dict[str, Any]:
        """Return ``app.bsky.actor.getProfile`` for ``actor`` as viewed by this session."""
        return await self._xrpc(
            self.RequestParams(
                method="GET",
                nsid="app.bsky.actor.getProfile",
                params={"actor": actor},
                token=self._access_token(),
            )
        )

    async def is_following(self, actor: str) -> bool:
        """Return True if this session's account follows ``actor``."""
        profile = await self.get_profile(actor)
        viewer = profile.get("viewer") or {}
        return bool(viewer.get("following"))

    async def resolve_handle(self, handle: str) -> str:
        """Resolve a handle to its DID."""
        payload = await self._xrpc(
            self.RequestParams(
                method="GET",
                nsid="com.atproto.identity.resolveHandle",
                params={"handle": handle},
            )
        )
        return str(payload["did"])

    async def follow(self, subject_did: str) -> str:
        """Create a follow record for ``subject_did``; return the record URI."""
        session = self._require_session()
        created_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        payload = await self._xrpc(
            self.RequestParams(
                method="POST",
                nsid="com.atproto.repo.createRecord",
                json_data={
                    "repo": session.did,
                    "collection": FOLLOW_COLLECTION,
                    "record": {
                        "$type": FOLLOW_COLLECTION,
                        "subject": subject_did,
                        "createdAt": created_at,
                    },
                },
                token=session.access_jwt,
            )
        )
        return str(payload.get("uri", ""))

    async def get_service_auth(self, audience: str, method: str) -> str:
        """Mint a service-auth token scoped to ``audience`` and ``method``."""
        payload = await self._xrpc(
            self.RequestParams(
                method="GET",
                nsid="com.atproto.server.getServiceAuth",
                params={"aud": audience, "lxm": method},
                token=self._access_token(),
            )
        )
        token = payload.get("token")
        if not token:
            raise AtprotoError("getServiceAuth returned no token")
        return str(token)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
                self._client = None
