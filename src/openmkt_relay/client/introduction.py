"""Buyer-side state machine for the seller introduction flow.

A buyer has to follow the bot (so the bot may relay to them) and the seller
(so the seller can answer once introduced) before asking the relay to send
an introduction. Only the "interest sent" flag is persisted; everything else
is re-derived from the follow graph on every load.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum

import httpx

from openmkt_relay.client.identity_graph import IdentityGraph
from openmkt_relay.client.ledger import InterestLedger
from openmkt_relay.client.notify import NotifyClient
from openmkt_relay.services.atproto import AtprotoError

logger = logging.getLogger(__name__)

FOLLOW_BOT_FAILED = "Failed to follow the bot. Please try again."
FOLLOW_SELLER_FAILED = "Failed to follow the seller. Please try again."
NOTIFY_FAILED = "Failed to send interest notification."


class FlowStep(str, Enum):
    """Steps of the introduction flow."""
    LOADING = "loading"
    OWN_LISTING = "own-listing"    # Buyer is the seller; nothing to do
    FOLLOW_BOT = "follow-bot"
    FOLLOW_SELLER = "follow-seller"
    READY = "ready"
    SENDING = "sending"            # Notify request in flight
    SENT = "sent"


class IllegalTransition(RuntimeError):
    """Raised when an event is not allowed in the current step."""

    def __init__(self, step: FlowStep, event: object) -> None:
        super().__init__(f"{type(event).__name__} is not allowed in step {step.value!r}")
        self.step = step
        self.event = event


@dataclass(frozen=True)
class FlowState:
    """Immutable snapshot of the flow."""

    step: FlowStep = FlowStep.LOADING
    follows_bot: bool = False
    follows_seller: bool = False
    interest_sent: bool = False
    error: str | None = None
    rate_limit_message: str | None = None
    reset_in_minutes: int | None = None
    remaining_requests: int | None = None


@dataclass(frozen=True)
class Loaded:
    own_listing: bool
    follows_bot: bool
    follows_seller: bool
    interest_sent: bool


@dataclass(frozen=True)
class FollowedBot:
    pass


@dataclass(frozen=True)
class FollowedSeller:
    pass


@dataclass(frozen=True)
class FollowFailed:
    error: str


@dataclass(frozen=True)
class InterestRequested:
    pass


@dataclass(frozen=True)
class InterestSent:
    remaining_requests: int | None = None
    reset_in_minutes: int | None = None


@dataclass(frozen=True)
class InterestRateLimited:
    message: str
    reset_in_minutes: int | None = None


@dataclass(frozen=True)
class InterestFailed:
    error: str


FlowEvent = (
    Loaded
    | FollowedBot
    | FollowedSeller
    | FollowFailed
    | InterestRequested
    | InterestSent
    | InterestRateLimited
    | InterestFailed
)


def derive_step(
    *, own_listing: bool, follows_bot: bool, follows_seller: bool, interest_sent: bool
) -> FlowStep:
    """Pick the resting step for a set of facts.

    Precedence: own listing, already sent, follow bot, follow seller, ready.
    """
    if own_listing:
        return FlowStep.OWN_LISTING
    if interest_sent:
        return FlowStep.SENT
    if not follows_bot:
        return FlowStep.FOLLOW_BOT
    if not follows_seller:
        return FlowStep.FOLLOW_SELLER
    return FlowStep.READY


def _settle(state: FlowState) -> FlowState:
    step = derive_step(
        own_listing=False,
        follows_bot=state.follows_bot,
        follows_seller=state.follows_seller,
        interest_sent=state.interest_sent,
    )
    return replace(state, step=step)


def transition(state: FlowState, event: FlowEvent) -> FlowState:
    """Return the state reached by applying ``event`` to ``state``.

    Raises:
        IllegalTransition: If ``event`` is undefined for ``state.step``.
    """
    step = state.step

    if isinstance(event, Loaded) and step is FlowStep.LOADING:
        loaded = FlowState(
            follows_bot=event.follows_bot,
            follows_seller=event.follows_seller,
            interest_sent=event.interest_sent,
        )
        return replace(
            loaded,
            step=derive_step(
                own_listing=event.own_listing,
                follows_bot=event.follows_bot,
                follows_seller=event.follows_seller,
                interest_sent=event.interest_sent,
            ),
        )

    if isinstance(event, FollowedBot) and step is FlowStep.FOLLOW_BOT:
        return _settle(replace(state, follows_bot=True, error=None))

    if isinstance(event, FollowedSeller) and step is FlowStep.FOLLOW_SELLER:
        return _settle(replace(state, follows_seller=True, error=None))

    if isinstance(event, FollowFailed) and step in (FlowStep.FOLLOW_BOT, FlowStep.FOLLOW_SELLER):
        return replace(state, error=event.error)

    if isinstance(event, InterestRequested) and step is FlowStep.READY:
        return replace(
            state,
            step=FlowStep.SENDING,
            error=None,
            rate_limit_message=None,
            reset_in_minutes=None,
        )

    if step is FlowStep.SENDING:
        if isinstance(event, InterestSent):
            return replace(
                state,
                step=FlowStep.SENT,
                interest_sent=True,
                remaining_requests=event.remaining_requests,
                reset_in_minutes=event.reset_in_minutes,
            )
        if isinstance(event, InterestRateLimited):
            return replace(
                state,
                step=FlowStep.READY,
                rate_limit_message=event.message,
                reset_in_minutes=event.reset_in_minutes,
                remaining_requests=0,
            )
        if isinstance(event, InterestFailed):
            return replace(state, step=FlowStep.READY, error=event.error)

    raise IllegalTransition(step, event)


@dataclass(frozen=True)
class ListingRef:
    """The listing a buyer is looking at."""

    uri: str
    title: str
    author_did: str
    path: str | None = None


@dataclass(frozen=True)
class Buyer:
    did: str
    handle: str


class IntroductionFlowController:
    """Drives one buyer through the introduction flow for one listing."""

    def __init__(
        self,
        *,
        listing: ListingRef,
        buyer: Buyer,
        bot_actor: str,
        graph: IdentityGraph,
        notify_client: NotifyClient,
        ledger: InterestLedger,
    ) -> None:
        self.listing = listing
        self.buyer = buyer
        self.bot_actor = bot_actor
        self.graph = graph
        self.notify_client = notify_client
        self.ledger = ledger
        self._state = FlowState()

    @property
    def state(self) -> FlowState:
        return self._state

    def _apply(self, event: FlowEvent) -> FlowState:
        self._state = transition(self._state, event)
        logger.debug("Flow for %s -> %s", self.listing.uri, self._state.step.value)
        return self._state

    async def _follows(self, actor: str) -> bool:
        try:
            return await self.graph.follows(actor)
        except (AtprotoError, httpx.HTTPError) as exc:
            logger.warning("Error checking follow status for %s: %s", actor, exc)
            return False

    async def load(self) -> FlowState:
        """(Re)derive the step from the follow graph and the ledger."""
        self._state = FlowState()
        own_listing = self.buyer.did == self.listing.author_did
        if own_listing:
            return self._apply(
                Loaded(own_listing=True, follows_bot=False, follows_seller=False, interest_sent=False)
            )

        interest_sent = self.ledger.was_sent(self.listing.uri)
        follows_bot, follows_seller = await asyncio.gather(
            self._follows(self.bot_actor),
            self._follows(self.listing.author_did),
        )
        return self._apply(
            Loaded(
                own_listing=False,
                follows_bot=follows_bot,
                follows_seller=follows_seller,
                interest_sent=interest_sent,
            )
        )

    async def _follow(self, actor: str, success: FlowEvent, failure_message: str) -> FlowState:
        try:
            await self.graph.follow(actor)
        except (AtprotoError, httpx.HTTPError) as exc:
            logger.error("Error following %s: %s", actor, exc)
            return self._apply(FollowFailed(failure_message))
        return self._apply(success)

    async def follow_bot(self) -> FlowState:
        """Follow the bot account. Only valid in the follow-bot step."""
        if self._state.step is not FlowStep.FOLLOW_BOT:
            raise IllegalTransition(self._state.step, FollowedBot())
        return await self._follow(self.bot_actor, FollowedBot(), FOLLOW_BOT_FAILED)

    async def follow_seller(self) -> FlowState:
        """Follow the seller. Only valid in the follow-seller step."""
        if self._state.step is not FlowStep.FOLLOW_SELLER:
            raise IllegalTransition(self._state.step, FollowedSeller())
        return await self._follow(self.listing.author_did, FollowedSeller(), FOLLOW_SELLER_FAILED)

    async def show_interest(self) -> FlowState:
        """Ask the relay to introduce the buyer to the seller.

        Raises:
            IllegalTransition: Unless the flow is in the ready step. A call
                made while a previous one is still sending is rejected.
        """
        self._apply(InterestRequested())
        try:
            outcome = await self.notify_client.send_interest(
                seller_did=self.listing.author_did,
                listing_title=self.listing.title,
                listing_path=self.listing.path,
                buyer_handle=self.buyer.handle,
                buyer_did=self.buyer.did,
            )
        except httpx.HTTPError as exc:
            logger.error("Error notifying seller: %s", exc)
            return self._apply(InterestFailed(NOTIFY_FAILED))

        if outcome.ok:
            self.ledger.mark_sent(self.listing.uri)
            return self._apply(
                InterestSent(
                    remaining_requests=outcome.remaining_requests,
                    reset_in_minutes=outcome.reset_in_minutes,
                )
            )
        if outcome.rate_limited:
            message = outcome.message or outcome.error or "Rate limit exceeded"
            return self._apply(InterestRateLimited(message, outcome.reset_in_minutes))
        return self._apply(
            InterestFailed(f"Failed to notify seller: {outcome.error or 'Unknown error'}")
        )
