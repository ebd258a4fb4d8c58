"""Chat session schemas."""

from pydantic import Field

from .common import CamelModel


class ChatSessionCreate(CamelModel):
    """Credentials used to open an upstream chat session."""

    handle: str | None = Field(None, description="Handle or DID of the account")
    password: str | None = Field(None, description="App password for the account")


class ChatSessionResponse(CamelModel):
    """Identity and PDS endpoint of the stored session."""

    did: str
    pds_endpoint: str
