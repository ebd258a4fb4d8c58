"""Shared API dependencies.

Long-lived collaborators are created once at startup and stored on
``app.state``; these providers hand them to endpoints so tests can swap
them through ``app.dependency_overrides``.
"""

from collections.abc import Callable
from typing import Annotated

import httpx
from fastapi import Depends, Header, Request

from openmkt_relay.core.errors import AuthError
from openmkt_relay.services.atproto import AtprotoAgent
from openmkt_relay.services.bot import BotAgentProvider
from openmkt_relay.services.chat_proxy import ChatProxy
from openmkt_relay.services.chat_relay import ChatRelayClient
from openmkt_relay.services.chat_sessions import ChatSessionStore
from openmkt_relay.services.rate_limiter import RateLimitBackend
from openmkt_relay.services.service_auth import ServiceAuthTokenBroker

RelayBuilder = Callable[[AtprotoAgent], ChatRelayClient]


def get_rate_limiter(request: Request) -> RateLimitBackend:
    """Return the process-wide interest rate limiter."""
    return request.app.state.rate_limiter


def get_chat_session_store(request: Request) -> ChatSessionStore:
    """Return the store of upstream chat sessions."""
    return request.app.state.chat_sessions


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Return the shared outbound HTTP client."""
    return request.app.state.http_client


def get_bot_provider(request: Request) -> BotAgentProvider:
    """Return the provider of the authenticated bot agent."""
    return request.app.state.bot_provider


def get_chat_proxy(request: Request) -> ChatProxy:
    """Return the chat read proxy."""
    return request.app.state.chat_proxy


def get_session_agent_factory(
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> Callable[[], AtprotoAgent]:
    """Return a factory for unauthenticated agents used to open user sessions."""

    def build() -> AtprotoAgent:
        return AtprotoAgent(client=client)

    return build


def get_relay_builder(
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> RelayBuilder:
    """Return a callable binding a relay client to an authenticated bot agent."""

    def build(agent: AtprotoAgent) -> ChatRelayClient:
        return ChatRelayClient(ServiceAuthTokenBroker(agent), agent.did or "", client=client)

    return build


def require_authorization(authorization: Annotated[str | None, Header()] = None) -> str:
    """Return the raw Authorization header or fail with 401."""
    if not authorization:
        raise AuthError("Missing authorization header")
    return authorization


RateLimiterDep = Annotated[RateLimitBackend, Depends(get_rate_limiter)]
ChatSessionStoreDep = Annotated[ChatSessionStore, Depends(get_chat_session_store)]
BotProviderDep = Annotated[BotAgentProvider, Depends(get_bot_provider)]
ChatProxyDep = Annotated[ChatProxy, Depends(get_chat_proxy)]
RelayBuilderDep = Annotated[RelayBuilder, Depends(get_relay_builder)]
SessionAgentFactoryDep = Annotated[Callable[[], AtprotoAgent], Depends(get_session_agent_factory)]
AuthorizationDep = Annotated[str, Depends(require_authorization)]
