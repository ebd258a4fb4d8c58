# tests/client/test_notify_client.py
"""Tests for the notify HTTP client."""

import json

import httpx
import pytest
import respx

from openmkt_relay.client.notify import NotifyClient

RELAY = "http://relay.test"


@pytest.fixture
async def notify_client():
    client = NotifyClient(RELAY + "/")
    yield client
    await client.close()


@respx.mock
async def test_send_interest_posts_camel_case_body(notify_client: NotifyClient) -> None:
    route = respx.post(f"{RELAY}/api/v1/notify").mock(
        return_value=httpx.Response(200, json={"success": True, "remainingRequests": 2, "resetInMinutes": 17})
    )

    outcome = await notify_client.send_interest(
        seller_did="did:plc:seller",
        listing_title="Blue bike",
        buyer_handle="buyer.test",
        buyer_did="did:plc:buyer",
    )

    assert outcome.ok
    assert outcome.remaining_requests == 2
    assert outcome.reset_in_minutes == 17
    body = json.loads(route.calls.last.request.content)
    assert body["sellerDid"] == "did:plc:seller"
    assert body["buyerDid"] == "did:plc:buyer"


@respx.mock
async def test_send_interest_decodes_rate_limit(notify_client: NotifyClient) -> None:
    respx.post(f"{RELAY}/api/v1/notify").mock(
        return_value=httpx.Response(
            429,
            json={"error": "Rate limit exceeded", "message": "wait", "remainingRequests": 0, "resetInMinutes": 9},
        )
    )

    outcome = await notify_client.send_interest(
        seller_did="s", listing_title="t", buyer_handle="h", buyer_did="b"
    )

    assert outcome.rate_limited
    assert not outcome.ok
    assert outcome.message == "wait"
    assert outcome.reset_in_minutes == 9


@respx.mock
async def test_send_interest_tolerates_non_json_errors(notify_client: NotifyClient) -> None:
    respx.post(f"{RELAY}/api/v1/notify").mock(return_value=httpx.Response(502, text="Bad Gateway"))

    outcome = await notify_client.send_interest(
        seller_did="s", listing_title="t", buyer_handle="h", buyer_did="b"
    )

    assert outcome.status_code == 502
    assert outcome.error is None


@respx.mock
async def test_status(notify_client: NotifyClient) -> None:
    route = respx.get(f"{RELAY}/api/v1/notify/status").mock(
        return_value=httpx.Response(200, json={"requestsUsed": 1, "remainingRequests": 4, "resetInMinutes": 60})
    )

    assert (await notify_client.status("did:plc:buyer"))["remainingRequests"] == 4
    assert route.calls.last.request.url.params["did"] == "did:plc:buyer"
