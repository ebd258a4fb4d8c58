"""Follow-graph queries made on behalf of the signed-in buyer."""

from __future__ import annotations

from typing import Protocol

from openmkt_relay.services.atproto import AtprotoAgent


class IdentityGraph(Protocol):
    async def follows(self, actor: str) -> bool:
        """Return True if the signed-in account follows ``actor``."""
        ...

    async def follow(self, actor: str) -> None:
        """Follow ``actor`` from the signed-in account."""
        ...


class AtprotoIdentityGraph:
    """:class:`IdentityGraph` backed by the buyer's own authenticated agent."""

    def __init__(self, agent: AtprotoAgent) -> None:
        self.agent = agent

    async def follows(self, actor: str) -> bool:
        return await self.agent.is_following(actor)

    async def follow(self, actor: str) -> None:
        subject = actor if actor.startswith("did:") else await self.agent.resolve_handle(actor)
        await self.agent.follow(subject)
