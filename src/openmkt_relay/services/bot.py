"""Lazily authenticated session for the marketplace bot account."""

from __future__ import annotations

import asyncio
import logging

import httpx

from openmkt_relay.core.errors import ConfigError
from openmkt_relay.core.settings import Settings, settings
from openmkt_relay.services.atproto import AtprotoAgent, AtprotoError
from openmkt_relay.services.service_auth import AuthBrokerError

logger = logging.getLogger(__name__)


class BotAgentProvider:
    """Owns the bot's :class:`AtprotoAgent` and keeps its session usable.

    The first call logs in. Later calls reuse the session, exchanging the
    refresh token once the access token expires and falling back to a full
    login when the refresh is rejected.
    """

    def __init__(self, config: Settings | None = None, agent: AtprotoAgent | None = None) -> None:
        self.config = config or settings
        self.agent = agent or AtprotoAgent(
            self.config.primary_service_url,
            timeout_seconds=self.config.http_timeout_seconds,
        )
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self.config.bot_configured

    async def _login(self) -> None:
        try:
            await self.agent.login(
                self.config.bot_handle or "", self.config.bot_app_password or ""
            )
        except (AtprotoError, httpx.HTTPError) as exc:
            logger.error("Failed to login bot: %s", exc)
            raise AuthBrokerError(details="Bot login failed") from exc

    async def get_agent(self) -> AtprotoAgent:
        """Return the bot agent with a non-expired session.

        Raises:
            ConfigError: If bot credentials are not configured.
            AuthBrokerError: If the bot cannot authenticate.
        """
        if not self.configured:
            raise ConfigError(
                "Service temporarily unavailable", details="Bot credentials not configured"
            )

        async with self._lock:
            session = self.agent.session
            if session is None:
                await self._login()
            elif session.is_expired():
                try:
                    await self.agent.refresh_session()
                except (AtprotoError, httpx.HTTPError) as exc:
                    logger.warning("Bot session refresh failed (%s); logging in again", exc)
                    await self._login()
        return self.agent

    async def close(self) -> None:
        await self.agent.close()
