# src/openmkt_relay/api/v1/endpoints/notify.py
"""Interest notification endpoints.

A buyer who cannot message a seller directly asks the bot to introduce
them. Requests are rate limited per buyer DID.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from openmkt_relay.core.errors import RateLimitError, UpstreamUnavailable, ValidationError
from openmkt_relay.core.settings import settings
from openmkt_relay.schemas.notify import NotifyRequest, NotifyResponse, RateLimitStatusResponse
from openmkt_relay.services.chat_relay import (
    ConversationUnavailable,
    SendFailed,
    compose_interest_message,
)

from ..dependencies import BotProviderDep, RateLimiterDep, RelayBuilderDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notify", tags=["notify"])


@router.post("", response_model=NotifyResponse)
async def notify_seller(
    body: NotifyRequest,
    rate_limiter: RateLimiterDep,
    bot_provider: BotProviderDep,
    build_relay: RelayBuilderDep,
) -> NotifyResponse:
    """Relay a buyer's interest in a listing to its seller."""
    if not (body.seller_did and body.listing_title and body.buyer_handle and body.buyer_did):
        raise ValidationError("Missing required fields")

    agent = await bot_provider.get_agent()

    decision = rate_limiter.check_and_record(body.buyer_did)
    if not decision.admitted:
        raise RateLimitError(decision.reason or "", reset_in_minutes=decision.reset_in_minutes)

    relay = build_relay(agent)
    message = compose_interest_message(
        body.buyer_handle,
        body.listing_title,
        body.listing_path,
        profile_base_url=settings.profile_base_url,
    )

    try:
        await relay.introduce(body.seller_did, message)
    except ConversationUnavailable as exc:
        raise UpstreamUnavailable("Failed to connect to seller chat", details=exc.details) from exc
    except SendFailed as exc:
        raise UpstreamUnavailable("Failed to send message to seller", details=exc.details) from exc

    logger.info(
        "Relayed interest from %s to %s (%d remaining)",
        body.buyer_did,
        body.seller_did,
        decision.remaining,
    )
    return NotifyResponse(
        success=True,
        remaining_requests=decision.remaining,
        reset_in_minutes=decision.reset_in_minutes,
    )


@router.get("/status", response_model=RateLimitStatusResponse)
async def notify_status(
    rate_limiter: RateLimiterDep,
    did: str = Query(..., min_length=1, description="DID of the buyer"),
) -> RateLimitStatusResponse:
    """Return the caller's remaining interest allowance without consuming it."""
    current = rate_limiter.status(did)
    return RateLimitStatusResponse(
        requests_used=current.requests_used,
        remaining_requests=current.remaining,
        reset_in_minutes=current.reset_in_minutes,
    )
