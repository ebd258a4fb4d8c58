# src/openmkt_relay/api/v1/endpoints/marketplace.py
"""Marketplace membership endpoints."""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter

from openmkt_relay.core.errors import UpstreamUnavailable, ValidationError
from openmkt_relay.schemas.marketplace import RegisterRequest, RegisterResponse
from openmkt_relay.services.atproto import AtprotoError

from ..dependencies import BotProviderDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/marketplace", tags=["marketplace"])


@router.post("/register", response_model=RegisterResponse)
async def register_member(body: RegisterRequest, bot_provider: BotProviderDep) -> RegisterResponse:
    """Have the bot follow a member so it can later relay introductions to them."""
    if not body.did:
        raise ValidationError("Missing DID")

    agent = await bot_provider.get_agent()
    try:
        if await agent.is_following(body.did):
            return RegisterResponse(success=True, message="Already verified")
        await agent.follow(body.did)
    except (AtprotoError, httpx.HTTPError) as exc:
        logger.error("Error registering %s: %s", body.did, exc)
        raise UpstreamUnavailable("Internal Server Error", details=str(exc)) from exc

    logger.info("Bot now follows %s", body.did)
    return RegisterResponse(
        success=True,
        message="Successfully registered! The verified bot is now following you.",
    )
