"""Marketplace registration and reporting schemas."""

from pydantic import Field

from .common import CamelModel


class RegisterRequest(CamelModel):
    """Request for the bot to follow a marketplace member."""

    did: str | None = Field(None, description="DID of the member to follow")


class RegisterResponse(CamelModel):
    """Registration outcome."""

    success: bool = True
    message: str


class ReportRequest(CamelModel):
    """Report about a listing forwarded to the administrator."""

    listing_uri: str | None = Field(None, description="AT URI of the reported listing")
    reason: str | None = Field(None, description="Short report category")
    description: str | None = Field(None, description="Free-form details")
    reporter_did: str | None = Field(None, description="DID of the reporter, if signed in")
