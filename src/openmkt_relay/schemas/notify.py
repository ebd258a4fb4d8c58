"""Interest notification schemas."""

from pydantic import Field

from .common import CamelModel


class NotifyRequest(CamelModel):
    """Body of a "show interest" request.

    Fields are optional at the schema level so missing values produce the
    service's own 400 response instead of a generic validation error.
    """

    seller_did: str | None = Field(None, description="DID of the listing author")
    listing_title: str | None = Field(None, description="Title of the listing")
    listing_path: str | None = Field(None, description="Link back to the listing")
    buyer_handle: str | None = Field(None, description="Handle of the interested buyer")
    buyer_did: str | None = Field(None, description="DID of the interested buyer")


class NotifyResponse(CamelModel):
    """Successful relay with the caller's remaining allowance."""

    success: bool = True
    remaining_requests: int
    reset_in_minutes: int


class RateLimitStatusResponse(CamelModel):
    """Read-only allowance for UI display."""

    requests_used: int
    remaining_requests: int
    reset_in_minutes: int
