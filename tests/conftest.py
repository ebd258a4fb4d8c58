# tests/conftest.py
from __future__ import annotations

import time
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from openmkt_relay.api.v1 import dependencies
from openmkt_relay.main import app as fastapi_app
from openmkt_relay.services.atproto import AtprotoAgent, AtprotoSession
from openmkt_relay.services.bot import BotAgentProvider
from openmkt_relay.services.chat_proxy import ChatProxy
from openmkt_relay.services.chat_relay import ChatRelayClient, RelayResult
from openmkt_relay.services.chat_sessions import ChatSessionStore
from openmkt_relay.services.rate_limiter import RateLimiter

BOT_DID = "did:plc:bot"
BUYER_DID = "did:plc:buyer"
SELLER_DID = "did:plc:seller"


class FakeClock:
    """Manually advanced clock for time-dependent services."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_jwt(expires_in: float = 3600, **claims: Any) -> str:
    """Build an HS256 token whose ``exp`` is ``expires_in`` seconds away."""
    payload = {"sub": claims.pop("sub", BOT_DID), "exp": int(time.time() + expires_in), **claims}
    return jwt.encode(payload, "test-secret", algorithm="HS256")


def make_session(did: str = BOT_DID, *, expires_in: float = 3600) -> AtprotoSession:
    return AtprotoSession(
        did=did,
        handle="bot.test",
        access_jwt=make_jwt(expires_in, sub=did),
        refresh_jwt=make_jwt(86_400, sub=did),
        pds_endpoint="https://pds.test",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def rate_limiter() -> RateLimiter:
    return RateLimiter(window_seconds=3600, max_requests=5)


@pytest.fixture()
def chat_sessions() -> ChatSessionStore:
    return ChatSessionStore()


@pytest.fixture()
def bot_agent() -> AsyncMock:
    agent = AsyncMock(spec=AtprotoAgent)
    agent.did = BOT_DID
    agent.session = make_session()
    agent.is_following.return_value = False
    agent.follow.return_value = f"at://{BOT_DID}/app.bsky.graph.follow/1"
    agent.resolve_handle.return_value = "did:plc:admin"
    return agent


@pytest.fixture()
def bot_provider(bot_agent: AsyncMock) -> AsyncMock:
    provider = AsyncMock(spec=BotAgentProvider)
    provider.get_agent.return_value = bot_agent
    return provider


@pytest.fixture()
def relay() -> AsyncMock:
    relay = AsyncMock(spec=ChatRelayClient)
    relay.introduce.return_value = RelayResult(ok=True, convo_id="convo-1", message_id="msg-1")
    relay.send.return_value = RelayResult(ok=True, convo_id="convo-2", message_id="msg-2")
    return relay


@pytest.fixture()
def relay_builder(relay: AsyncMock) -> Any:
    """Relay factory handed to endpoints; swap per test to use a real client."""
    return lambda agent: relay


@pytest.fixture()
def chat_proxy() -> AsyncMock:
    return AsyncMock(spec=ChatProxy)


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    rate_limiter: RateLimiter,
    chat_sessions: ChatSessionStore,
    bot_provider: AsyncMock,
    relay_builder: Any,
    chat_proxy: AsyncMock,
) -> Iterator[None]:
    overrides = {
        dependencies.get_rate_limiter: lambda: rate_limiter,
        dependencies.get_chat_session_store: lambda: chat_sessions,
        dependencies.get_bot_provider: lambda: bot_provider,
        dependencies.get_relay_builder: lambda: relay_builder,
        dependencies.get_chat_proxy: lambda: chat_proxy,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
