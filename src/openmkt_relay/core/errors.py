"""Error taxonomy shared by the relay service.

Every error the API surfaces derives from :class:`RelayServiceError`, which
knows its HTTP status and how to render itself as the ``{"error": ...}`` JSON
body the marketplace frontend expects.
"""

from __future__ import annotations

from typing import Any


class RelayServiceError(RuntimeError):
    """Base class for errors rendered directly to API callers."""

    status_code: int = 500

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body describing this error."""
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(RelayServiceError):
    """Missing or malformed caller input."""

    status_code = 400


class AuthError(RelayServiceError):
    """Missing, expired or mismatching credentials."""

    status_code = 401


class NotFoundError(RelayServiceError):
    """The addressed resource does not exist."""

    status_code = 404


class RateLimitError(RelayServiceError):
    """The caller exhausted its request allowance for the current window."""

    status_code = 429

    def __init__(self, message: str, *, reset_in_minutes: int) -> None:
        super().__init__("Rate limit exceeded")
        self.user_message = message
        self.reset_in_minutes = reset_in_minutes

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "message": self.user_message,
            "remainingRequests": 0,
            "resetInMinutes": self.reset_in_minutes,
        }


class UpstreamUnavailable(RelayServiceError):
    """An upstream chat or identity operation failed."""

    status_code = 500


class ConfigError(RelayServiceError):
    """Required operator configuration is absent."""

    status_code = 503


class UpstreamStatusError(RelayServiceError):
    """Upstream failure passed through with its original status and body."""

    def __init__(self, status_code: int, message: str, *, details: str | None = None) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
