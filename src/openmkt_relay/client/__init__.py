"""Buyer-side helpers for driving the introduction flow."""

from .identity_graph import AtprotoIdentityGraph, IdentityGraph
from .introduction import (
    Buyer,
    FlowState,
    FlowStep,
    IllegalTransition,
    IntroductionFlowController,
    ListingRef,
    transition,
)
from .ledger import InterestLedger, JsonFileInterestLedger, MemoryInterestLedger
from .notify import NotifyClient, NotifyOutcome

__all__ = [
    "AtprotoIdentityGraph",
    "Buyer",
    "FlowState",
    "FlowStep",
    "IdentityGraph",
    "IllegalTransition",
    "InterestLedger",
    "IntroductionFlowController",
    "JsonFileInterestLedger",
    "ListingRef",
    "MemoryInterestLedger",
    "NotifyClient",
    "NotifyOutcome",
    "transition",
]
