# src/openmkt_relay/api/v1/endpoints/chat.py
"""Chat session and chat read proxy endpoints."""

from __future__ import annotations

import hmac
import logging
from typing import Any

import httpx
from fastapi import APIRouter, Query

from openmkt_relay.core.errors import (
    AuthError,
    NotFoundError,
    UpstreamStatusError,
    UpstreamUnavailable,
    ValidationError,
)
from openmkt_relay.schemas.chat import ChatSessionCreate, ChatSessionResponse
from openmkt_relay.schemas.common import SuccessResponse
from openmkt_relay.services.atproto import XrpcError
from openmkt_relay.services.chat_proxy import GET_MESSAGES, LIST_CONVOS, ProxyResponse
from openmkt_relay.services.chat_sessions import ChatSessionRecord

from ..dependencies import (
    AuthorizationDep,
    ChatProxyDep,
    ChatSessionStoreDep,
    SessionAgentFactoryDep,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

MAX_MESSAGES_LIMIT = 50
UNREAD_CONVOS_LIMIT = 50


def clamp_limit(raw: str | None) -> int:
    """Parse a page size, falling back to the maximum and clamping to 1..50."""
    try:
        value = int(raw) if raw else 0
    except ValueError:
        value = 0
    if value == 0:
        return MAX_MESSAGES_LIMIT
    return max(1, min(MAX_MESSAGES_LIMIT, value))


def _unwrap(result: ProxyResponse) -> Any:
    if not result.ok:
        raise UpstreamStatusError(
            result.status_code,
            f"Upstream error: {result.status_code}",
            details=result.text,
        )
    return result.data if result.data is not None else {}


@router.post("/session", response_model=ChatSessionResponse)
async def create_chat_session(
    body: ChatSessionCreate,
    store: ChatSessionStoreDep,
    agent_factory: SessionAgentFactoryDep,
) -> ChatSessionResponse:
    """Open an upstream session and remember its tokens for the chat proxy."""
    handle = (body.handle or "").strip()
    password = (body.password or "").strip()
    if not handle or not password:
        raise ValidationError("Missing handle or password")

    agent = agent_factory()
    try:
        session = await agent.login(handle, password)
    except XrpcError as exc:
        raise UpstreamStatusError(
            exc.status_code, f"Session error: {exc.status_code}", details=exc.body
        ) from exc
    except httpx.HTTPError as exc:
        raise UpstreamUnavailable("Internal chat session error", details=str(exc)) from exc

    store.save(
        ChatSessionRecord(
            did=session.did,
            handle=session.handle,
            pds_endpoint=session.pds_endpoint,
            access_jwt=session.access_jwt,
            refresh_jwt=session.refresh_jwt,
        )
    )
    logger.info("Stored chat session for %s at %s", session.did, session.pds_endpoint)
    return ChatSessionResponse(did=session.did, pds_endpoint=session.pds_endpoint)


@router.delete("/session/{did}", response_model=SuccessResponse)
async def delete_chat_session(
    did: str,
    authorization: AuthorizationDep,
    store: ChatSessionStoreDep,
) -> SuccessResponse:
    """Forget a stored session. The caller must present one of its tokens."""
    record = store.get(did)
    if record is None:
        raise NotFoundError("Chat session not found")

    scheme, _, token = authorization.partition(" ")
    candidates = [record.access_jwt, record.refresh_jwt or ""]
    if scheme.lower() != "bearer" or not token or not any(
        candidate and hmac.compare_digest(token, candidate) for candidate in candidates
    ):
        raise AuthError("Invalid credentials for chat session")

    store.remove(did)
    logger.info("Removed chat session for %s", did)
    return SuccessResponse(success=True)


@router.get("/unread")
async def list_unread(
    authorization: AuthorizationDep,
    proxy: ChatProxyDep,
    pds_endpoint: str | None = Query(None, alias="pdsEndpoint"),
) -> Any:
    """Proxy ``listConvos`` so the UI can count unread conversations."""
    if not pds_endpoint:
        raise ValidationError("Missing pdsEndpoint parameter")

    try:
        result = await proxy.forward(
            pds_endpoint, authorization, LIST_CONVOS, {"limit": UNREAD_CONVOS_LIMIT}
        )
    except httpx.HTTPError as exc:
        logger.error("[Proxy] Unread failed: %s", exc)
        raise UpstreamUnavailable("Internal proxy error", details=str(exc)) from exc
    return _unwrap(result)


@router.get("/messages")
async def list_messages(
    authorization: AuthorizationDep,
    proxy: ChatProxyDep,
    pds_endpoint: str | None = Query(None, alias="pdsEndpoint"),
    convo_id: str | None = Query(None, alias="convoId"),
    limit: str | None = Query(None),
) -> Any:
    """Proxy ``getMessages`` for one conversation."""
    if not pds_endpoint or not convo_id:
        raise ValidationError("Missing pdsEndpoint or convoId parameter")

    try:
        result = await proxy.forward(
            pds_endpoint,
            authorization,
            GET_MESSAGES,
            {"convoId": convo_id, "limit": clamp_limit(limit)},
        )
    except httpx.HTTPError as exc:
        logger.error("[Proxy] Messages failed: %s", exc)
        raise UpstreamUnavailable("Internal proxy error", details=str(exc)) from exc
    return _unwrap(result)
