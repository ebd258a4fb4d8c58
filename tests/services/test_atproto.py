# tests/services/test_atproto.py
"""Tests for the XRPC agent and its helpers."""

import json
import time

import httpx
import pytest
import respx

from openmkt_relay.services.atproto import (
    AtprotoAgent,
    NoSessionError,
    XrpcError,
    jwt_expiry,
    pds_endpoint_from_did_doc,
    token_expired,
)
from tests.conftest import make_jwt

SERVICE = "https://entryway.test"
PDS = "https://pds.test"


def _session_payload(**extra):
    payload = {
        "did": "did:plc:alice",
        "handle": "alice.test",
        "accessJwt": make_jwt(sub="did:plc:alice"),
        "refreshJwt": make_jwt(86_400, sub="did:plc:alice"),
        "didDoc": {"service": [{"id": "#atproto_pds", "serviceEndpoint": PDS}]},
    }
    payload.update(extra)
    return payload


def test_pds_endpoint_prefers_atproto_pds_service() -> None:
    doc = {
        "service": [
            {"id": "#bsky_notif", "serviceEndpoint": "https://notif.test"},
            {"id": "did:plc:alice#atproto_pds", "serviceEndpoint": PDS},
        ]
    }
    assert pds_endpoint_from_did_doc(doc, SERVICE) == PDS


def test_pds_endpoint_matches_on_service_type() -> None:
    doc = {"service": [{"type": "AtprotoPersonalDataServer", "serviceEndpoint": PDS}]}
    assert pds_endpoint_from_did_doc(doc, SERVICE) == PDS


def test_pds_endpoint_defaults_without_service() -> None:
    assert pds_endpoint_from_did_doc(None, SERVICE) == SERVICE
    assert pds_endpoint_from_did_doc({"service": []}, SERVICE) == SERVICE


def test_jwt_expiry_reads_exp_claim() -> None:
    token = make_jwt(600)
    assert jwt_expiry(token) == pytest.approx(time.time() + 600, abs=5)
    assert jwt_expiry("not-a-jwt") is None


def test_token_expired_uses_leeway() -> None:
    assert token_expired(make_jwt(-10))
    assert token_expired(make_jwt(10))
    assert not token_expired(make_jwt(600))
    assert not token_expired("opaque-token")


@respx.mock
async def test_login_stores_session_with_pds_endpoint() -> None:
    route = respx.post(f"{SERVICE}/xrpc/com.atproto.server.createSession").mock(
        return_value=httpx.Response(200, json=_session_payload())
    )
    agent = AtprotoAgent(SERVICE)

    session = await agent.login("alice.test", "app-pass")

    assert session.did == "did:plc:alice"
    assert session.pds_endpoint == PDS
    assert agent.did == "did:plc:alice"
    assert json.loads(route.calls.last.request.content) == {
        "identifier": "alice.test",
        "password": "app-pass",
    }
    await agent.close()


@respx.mock
async def test_login_failure_raises_xrpc_error() -> None:
    respx.post(f"{SERVICE}/xrpc/com.atproto.server.createSession").mock(
        return_value=httpx.Response(
            401, json={"error": "AuthenticationRequired", "message": "Invalid identifier or password"}
        )
    )
    agent = AtprotoAgent(SERVICE)

    with pytest.raises(XrpcError) as excinfo:
        await agent.login("alice.test", "wrong")

    assert excinfo.value.status_code == 401
    assert excinfo.value.error == "AuthenticationRequired"
    assert agent.session is None
    await agent.close()


@respx.mock
async def test_authenticated_calls_go_to_pds() -> None:
    respx.post(f"{SERVICE}/xrpc/com.atproto.server.createSession").mock(
        return_value=httpx.Response(200, json=_session_payload())
    )
    profile = respx.get(f"{PDS}/xrpc/app.bsky.actor.getProfile").mock(
        return_value=httpx.Response(200, json={"did": "did:plc:bob", "viewer": {"following": "at://x"}})
    )
    service_auth = respx.get(f"{PDS}/xrpc/com.atproto.server.getServiceAuth").mock(
        return_value=httpx.Response(200, json={"token": "svc-token"})
    )
    agent = AtprotoAgent(SERVICE)
    session = await agent.login("alice.test", "app-pass")

    assert await agent.is_following("did:plc:bob") is True
    assert await agent.get_service_auth("did:web:chat.test", "chat.bsky.convo.sendMessage") == "svc-token"

    request = service_auth.calls.last.request
    assert request.url.params["aud"] == "did:web:chat.test"
    assert request.url.params["lxm"] == "chat.bsky.convo.sendMessage"
    assert request.headers["Authorization"] == f"Bearer {session.access_jwt}"
    assert profile.calls.last.request.url.params["actor"] == "did:plc:bob"
    await agent.close()


@respx.mock
async def test_follow_creates_follow_record() -> None:
    respx.post(f"{SERVICE}/xrpc/com.atproto.server.createSession").mock(
        return_value=httpx.Response(200, json=_session_payload())
    )
    create = respx.post(f"{PDS}/xrpc/com.atproto.repo.createRecord").mock(
        return_value=httpx.Response(200, json={"uri": "at://did:plc:alice/app.bsky.graph.follow/1"})
    )
    agent = AtprotoAgent(SERVICE)
    await agent.login("alice.test", "app-pass")

    uri = await agent.follow("did:plc:bob")

    body = json.loads(create.calls.last.request.content)
    assert uri.endswith("/app.bsky.graph.follow/1")
    assert body["repo"] == "did:plc:alice"
    assert body["collection"] == "app.bsky.graph.follow"
    assert body["record"]["subject"] == "did:plc:bob"
    assert body["record"]["createdAt"].endswith("Z")
    await agent.close()


@respx.mock
async def test_refresh_session_replaces_tokens() -> None:
    respx.post(f"{SERVICE}/xrpc/com.atproto.server.createSession").mock(
        return_value=httpx.Response(200, json=_session_payload())
    )
    refresh = respx.post(f"{PDS}/xrpc/com.atproto.server.refreshSession").mock(
        return_value=httpx.Response(200, json={"accessJwt": "new-access", "refreshJwt": "new-refresh"})
    )
    agent = AtprotoAgent(SERVICE)
    first = await agent.login("alice.test", "app-pass")

    refreshed = await agent.refresh_session()

    assert refresh.calls.last.request.headers["Authorization"] == f"Bearer {first.refresh_jwt}"
    assert refreshed.access_jwt == "new-access"
    assert refreshed.refresh_jwt == "new-refresh"
    assert refreshed.did == first.did
    assert refreshed.pds_endpoint == PDS
    await agent.close()


async def test_authenticated_call_without_session_raises() -> None:
    agent = AtprotoAgent(SERVICE)

    with pytest.raises(NoSessionError):
        await agent.get_service_auth("did:web:chat.test", "chat.bsky.convo.sendMessage")
    with pytest.raises(NoSessionError):
        await agent.refresh_session()
    await agent.close()


@respx.mock
async def test_resolve_handle_uses_service_url() -> None:
    respx.get(f"{SERVICE}/xrpc/com.atproto.identity.resolveHandle").mock(
        return_value=httpx.Response(200, json={"did": "did:plc:admin"})
    )
    agent = AtprotoAgent(SERVICE)

    assert await agent.resolve_handle("admin.test") == "did:plc:admin"
    await agent.close()


async def test_shared_client_is_not_closed() -> None:
    async with httpx.AsyncClient() as shared:
        agent = AtprotoAgent(SERVICE, client=shared)
        await agent.close()
        assert not shared.is_closed
        assert await agent._ensure_client() is shared
