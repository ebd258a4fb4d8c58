# src/openmkt_relay/scripts/introduce.py
"""Walk a buyer through the introduction flow for one listing from a terminal.

Signs in as the buyer, derives the current step, optionally performs the
follow steps, and asks a running relay to introduce the buyer to the seller.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import httpx

from openmkt_relay.client.identity_graph import AtprotoIdentityGraph
from openmkt_relay.client.introduction import (
    Buyer,
    FlowState,
    FlowStep,
    IntroductionFlowController,
    ListingRef,
)
from openmkt_relay.client.ledger import JsonFileInterestLedger
from openmkt_relay.client.notify import NotifyClient
from openmkt_relay.core.logging import configure_logging
from openmkt_relay.core.settings import settings
from openmkt_relay.services.atproto import AtprotoAgent, AtprotoError

DEFAULT_LEDGER_PATH = os.path.join(os.path.expanduser("~"), ".openmkt", "interest.json")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show interest in a marketplace listing")
    parser.add_argument("listing_uri", help="AT URI of the listing")
    parser.add_argument("--title", required=True, help="Listing title")
    parser.add_argument("--seller", required=True, help="DID of the listing author")
    parser.add_argument("--path", default=None, help="Link back to the listing")
    parser.add_argument(
        "--handle",
        default=os.environ.get("OPENMKT_HANDLE"),
        help="Buyer handle (default: $OPENMKT_HANDLE)",
    )
    parser.add_argument(
        "--password",
        default=os.environ.get("OPENMKT_APP_PASSWORD"),
        help="Buyer app password (default: $OPENMKT_APP_PASSWORD)",
    )
    parser.add_argument(
        "--relay-url",
        default=os.environ.get("OPENMKT_RELAY_URL", "http://127.0.0.1:8000"),
        help="Base URL of the relay service (default: %(default)s)",
    )
    parser.add_argument(
        "--bot",
        default=settings.bot_handle,
        help="Bot handle to follow (default: BOT_HANDLE setting)",
    )
    parser.add_argument(
        "--ledger",
        default=DEFAULT_LEDGER_PATH,
        help="Where to remember sent introductions (default: %(default)s)",
    )
    parser.add_argument(
        "--follow",
        action="store_true",
        help="Follow the bot and the seller when required instead of stopping",
    )
    return parser.parse_args(argv)


def describe(state: FlowState) -> str:
    parts = [f"step={state.step.value}"]
    if state.error:
        parts.append(f"error={state.error!r}")
    if state.rate_limit_message:
        parts.append(f"rate_limit={state.rate_limit_message!r}")
    if state.remaining_requests is not None:
        parts.append(f"remaining={state.remaining_requests}")
    return " ".join(parts)


async def run(args: argparse.Namespace) -> int:
    if not args.handle or not args.password:
        print("[introduce] ERROR: buyer handle and app password are required", file=sys.stderr)
        return 2
    if not args.bot:
        print("[introduce] ERROR: bot handle is not configured (--bot)", file=sys.stderr)
        return 2

    agent = AtprotoAgent()
    notify_client = NotifyClient(args.relay_url)
    try:
        session = await agent.login(args.handle, args.password)
        controller = IntroductionFlowController(
            listing=ListingRef(
                uri=args.listing_uri, title=args.title, author_did=args.seller, path=args.path
            ),
            buyer=Buyer(did=session.did, handle=session.handle),
            bot_actor=args.bot,
            graph=AtprotoIdentityGraph(agent),
            notify_client=notify_client,
            ledger=JsonFileInterestLedger(args.ledger),
        )

        state = await controller.load()
        print(f"[introduce] {describe(state)}")

        while state.step in (FlowStep.FOLLOW_BOT, FlowStep.FOLLOW_SELLER):
            if not args.follow:
                print("[introduce] re-run with --follow to complete the follow steps")
                return 1
            previous = state.step
            if state.step is FlowStep.FOLLOW_BOT:
                state = await controller.follow_bot()
            else:
                state = await controller.follow_seller()
            print(f"[introduce] {describe(state)}")
            if state.step is previous:
                return 1

        if state.step is FlowStep.READY:
            state = await controller.show_interest()
            print(f"[introduce] {describe(state)}")

        return 0 if state.step in (FlowStep.SENT, FlowStep.OWN_LISTING) else 1
    except (AtprotoError, httpx.HTTPError) as exc:
        print(f"[introduce] ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        await notify_client.close()
        await agent.close()


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
