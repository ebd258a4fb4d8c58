# src/openmkt_relay/api/v1/endpoints/admin.py
"""Moderation report endpoint."""

from __future__ import annotations

import logging

import httpx
from fastapi import APIRouter

from openmkt_relay.core.errors import (
    ConfigError,
    RelayServiceError,
    UpstreamUnavailable,
    ValidationError,
)
from openmkt_relay.core.settings import settings
from openmkt_relay.schemas.common import SuccessResponse
from openmkt_relay.schemas.marketplace import ReportRequest
from openmkt_relay.services.atproto import AtprotoError
from openmkt_relay.services.chat_relay import RelayError, compose_report_message
from openmkt_relay.services.service_auth import AuthBrokerError

from ..dependencies import BotProviderDep, RelayBuilderDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/report", response_model=SuccessResponse)
async def report_listing(
    body: ReportRequest,
    bot_provider: BotProviderDep,
    build_relay: RelayBuilderDep,
) -> SuccessResponse:
    """Forward a listing report to the administrator's chat inbox."""
    if not body.listing_uri or not body.reason:
        raise ValidationError("Missing required fields")

    try:
        agent = await bot_provider.get_agent()
    except RelayServiceError as exc:
        logger.error("Failed to initialize bot: %s", exc)
        raise ConfigError("Service temporarily unavailable", details=exc.details) from exc

    try:
        admin_did = await agent.resolve_handle(settings.admin_handle)
    except (AtprotoError, httpx.HTTPError) as exc:
        logger.error("Failed to resolve admin handle %s: %s", settings.admin_handle, exc)
        raise UpstreamUnavailable("Configuration error: Admin not found") from exc

    message = compose_report_message(
        body.listing_uri,
        body.reason,
        body.description,
        reporter=body.reporter_did,
    )
    try:
        await build_relay(agent).send(admin_did, message)
    except (RelayError, AuthBrokerError) as exc:
        logger.error("Chat error while reporting %s: %s", body.listing_uri, exc)
        raise UpstreamUnavailable("Failed to notify admin via Chat", details=exc.details) from exc

    logger.info("Report for %s forwarded to %s", body.listing_uri, admin_did)
    return SuccessResponse(success=True)
