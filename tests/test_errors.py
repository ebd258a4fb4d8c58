# tests/test_errors.py
"""Tests for the error taxonomy."""

from openmkt_relay.core.errors import (
    AuthError,
    ConfigError,
    RateLimitError,
    UpstreamStatusError,
    ValidationError,
)
from openmkt_relay.services.chat_relay import ConversationUnavailable, SendFailed
from openmkt_relay.services.service_auth import AuthBrokerError


def test_status_codes() -> None:
    assert ValidationError("x").status_code == 400
    assert AuthError("x").status_code == 401
    assert AuthBrokerError().status_code == 503
    assert ConfigError("x").status_code == 503
    assert ConversationUnavailable().status_code == 500
    assert SendFailed().status_code == 500
    assert UpstreamStatusError(418, "teapot").status_code == 418


def test_payload_omits_missing_details() -> None:
    assert ValidationError("Missing DID").to_payload() == {"error": "Missing DID"}
    assert UpstreamStatusError(502, "Upstream error: 502", details="oops").to_payload() == {
        "error": "Upstream error: 502",
        "details": "oops",
    }


def test_rate_limit_payload() -> None:
    error = RateLimitError("Please wait 12 minutes", reset_in_minutes=12)

    assert error.status_code == 429
    assert error.to_payload() == {
        "error": "Rate limit exceeded",
        "message": "Please wait 12 minutes",
        "remainingRequests": 0,
        "resetInMinutes": 12,
    }
