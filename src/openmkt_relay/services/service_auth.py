"""Service-auth token minting for downstream chat calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

import httpx

from openmkt_relay.core.errors import AuthError
from openmkt_relay.services.atproto import AtprotoAgent, AtprotoError, jwt_expiry

logger = logging.getLogger(__name__)

GET_CONVO_FOR_MEMBERS: Final[str] = "chat.bsky.convo.getConvoForMembers"
SEND_MESSAGE: Final[str] = "chat.bsky.convo.sendMessage"


class AuthBrokerError(AuthError):
    """The bot session cannot mint service-auth tokens.

    Rendered as 503: the caller did nothing wrong, the relay account is
    unavailable.
    """

    status_code = 503

    def __init__(
        self, message: str = "Bot service unavailable", *, details: str | None = None
    ) -> None:
        super().__init__(message, details=details)


@dataclass(frozen=True)
class ServiceAuthToken:
    """Short-lived token valid for one audience and one XRPC method."""

    token: str
    audience: str
    method: str
    expires_at: float | None = None

    @property
    def authorization(self) -> str:
        return f"Bearer {self.token}"


class ServiceAuthTokenBroker:
    """Mints a fresh, method-scoped token for every downstream call.

    Tokens are never cached: each carries a single ``lxm`` scope, so the
    conversation lookup and the message send each need their own.
    """

    def __init__(self, agent: AtprotoAgent) -> None:
        self.agent = agent

    async def mint(self, audience: str, method: str) -> ServiceAuthToken:
        """Request a token for ``method`` on ``audience``.

        Raises:
            AuthBrokerError: If the session is missing or expired, or the
                upstream refuses to mint. Not retried here.
        """
        session = self.agent.session
        if session is None:
            raise AuthBrokerError(details="Bot session is not established")
        if session.is_expired():
            raise AuthBrokerError(details="Bot session has expired")

        try:
            token = await self.agent.get_service_auth(audience, method)
        except (AtprotoError, httpx.HTTPError) as exc:
            logger.error("Failed to get service auth for %s: %s", method, exc)
            raise AuthBrokerError(
                "Failed to get service auth for chat", details=str(exc)
            ) from exc

        return ServiceAuthToken(
            token=token,
            audience=audience,
            method=method,
            expires_at=jwt_expiry(token),
        )
