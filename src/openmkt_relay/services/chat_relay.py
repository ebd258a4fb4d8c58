"""Bot-mediated chat relay.

The bot account opens (or reuses) a conversation with a recipient and
sends them a message. Buyers and sellers who cannot DM each other because
of mutual-follow requirements are introduced this way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from openmkt_relay.core.errors import UpstreamUnavailable
from openmkt_relay.core.settings import settings
from openmkt_relay.services.service_auth import (
    GET_CONVO_FOR_MEMBERS,
    SEND_MESSAGE,
    ServiceAuthTokenBroker,
)

logger = logging.getLogger(__name__)


class RelayError(UpstreamUnavailable):
    """Base exception for relay failures. Never retried by the client."""


class ConversationUnavailable(RelayError):
    """The chat service refused to open a conversation with the recipient.

    Usually a bad DID or a block. Retrying is pointless.
    """

    def __init__(
        self, message: str = "Failed to connect to recipient chat", *, details: str | None = None
    ) -> None:
        super().__init__(message, details=details)


class SendFailed(RelayError):
    """The conversation exists but the message could not be delivered."""

    def __init__(
        self, message: str = "Failed to send message to recipient", *, details: str | None = None
    ) -> None:
        super().__init__(message, details=details)


@dataclass(frozen=True)
class RelayResult:
    """Outcome of a successful relay."""

    ok: bool
    convo_id: str
    message_id: str | None = None


def compose_interest_message(
    buyer_handle: str,
    listing_title: str,
    listing_path: str | None = None,
    *,
    profile_base_url: str | None = None,
) -> str:
    """Build the introduction text the bot sends to a seller."""
    handle = buyer_handle.lstrip("@")
    profile_url = f"{(profile_base_url or settings.profile_base_url).rstrip('/')}/{handle}"
    lines = [
        f'Hi! User @{handle} is interested in your listing: "{listing_title}".',
        "",
        "They cannot message you directly due to your privacy settings.",
        "",
        f"Please follow them back to enable direct chat: {profile_url}",
    ]
    if listing_path:
        lines.extend(["", f"Listing: {listing_path}"])
    return "\n".join(lines)


def compose_report_message(
    listing_uri: str,
    reason: str,
    description: str | None = None,
    reporter: str | None = None,
) -> str:
    """Build the moderation notice the bot sends to the administrator."""
    return "\n".join(
        [
            "\N{POLICE CARS REVOLVING LIGHT} REPORT RECEIVED \N{POLICE CARS REVOLVING LIGHT}",
            "",
            f"Reason: {reason}",
            f"Listing: {listing_uri}",
            f"Reporter: {reporter or 'Anonymous'}",
            "",
            "Description:",
            description or "No description provided.",
            "",
            "[Action Required] Check this listing.",
        ]
    )


class ChatRelayClient:
    """Resolves a bot↔recipient conversation and sends one message."""

    def __init__(
        self,
        broker: ServiceAuthTokenBroker,
        bot_did: str,
        *,
        client: httpx.AsyncClient,
        service_url: str | None = None,
        audience: str | None = None,
    ) -> None:
        self.broker = broker
        self.bot_did = bot_did
        self._client = client
        self.service_url = (service_url or settings.chat_service_url).rstrip("/")
        self.audience = audience or settings.chat_service_did

    def _url(self, method: str) -> str:
        return f"{self.service_url}/xrpc/{method}"

    async def _resolve_conversation(self, member_did: str) -> str:
        token = await self.broker.mint(self.audience, GET_CONVO_FOR_MEMBERS)
        members = list(dict.fromkeys([self.bot_did, member_did]))

        try:
            response = await self._client.get(
                self._url(GET_CONVO_FOR_MEMBERS),
                params=[("members", member) for member in members],
                headers={"Authorization": token.authorization},
            )
        except httpx.HTTPError as exc:
            logger.error("Bot failed to reach chat service for %s: %s", member_did, exc)
            raise ConversationUnavailable(details=str(exc)) from exc

        if not response.is_success:
            logger.error(
                "Bot failed to get convo with %s: %d %s",
                member_did,
                response.status_code,
                response.text,
            )
            raise ConversationUnavailable(details=response.text)

        try:
            payload: dict[str, Any] = response.json()
            convo_id = (payload.get("convo") or {}).get("id")
        except (ValueError, AttributeError) as exc:
            logger.error("Unreadable convo response for %s: %s", member_did, response.text)
            raise ConversationUnavailable(details="Chat service returned an invalid response") from exc
        if not convo_id:
            raise ConversationUnavailable(details="Chat service returned no conversation id")
        return str(convo_id)

    async def _send_message(self, convo_id: str, text: str) -> str | None:
        token = await self.broker.mint(self.audience, SEND_MESSAGE)

        try:
            response = await self._client.post(
                self._url(SEND_MESSAGE),
                json={"convoId": convo_id, "message": {"text": text}},
                headers={"Authorization": token.authorization},
            )
        except httpx.HTTPError as exc:
            logger.error("Bot failed to send message in %s: %s", convo_id, exc)
            raise SendFailed(details=str(exc)) from exc

        if not response.is_success:
            logger.error(
                "Bot failed to send message in %s: %d %s",
                convo_id,
                response.status_code,
                response.text,
            )
            raise SendFailed(details=response.text)

        # Accepted means delivered; only the message id is lost.
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            logger.warning("Unreadable sendMessage response in %s: %s", convo_id, response.text)
            return None
        return payload.get("id") if isinstance(payload, dict) else None

    async def send(self, member_did: str, text: str) -> RelayResult:
        """Deliver ``text`` to ``member_did`` from the bot account.

        Raises:
            ConversationUnavailable: The conversation could not be resolved.
                No message-scope token is minted in that case.
            SendFailed: The message was rejected.
            AuthBrokerError: A service-auth token could not be minted.
        """
        convo_id = await self._resolve_conversation(member_did)
        message_id = await self._send_message(convo_id, text)
        logger.info("Relayed message to %s in convo %s", member_did, convo_id)
        return RelayResult(ok=True, convo_id=convo_id, message_id=message_id)

    async def introduce(self, seller_did: str, message: str) -> RelayResult:
        """Introduce a buyer to ``seller_did`` with ``message``."""
        return await self.send(seller_did, message)
