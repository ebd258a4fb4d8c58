"""Periodic housekeeping for the in-process stores."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

from openmkt_relay.services.chat_sessions import ChatSessionStore
from openmkt_relay.services.rate_limiter import RateLimitBackend

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceStats:
    """Counters accumulated across maintenance passes."""

    runs: int = 0
    identities_swept: int = 0
    sessions_pruned: int = 0


class MaintenanceWorker:
    """Sweeps the rate limiter and prunes idle chat sessions on an interval.

    Runs as a background task so sweeps never add latency to a request.
    """

    def __init__(
        self,
        rate_limiter: RateLimitBackend,
        chat_sessions: ChatSessionStore,
        *,
        interval_seconds: float,
        session_max_idle_seconds: float,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.chat_sessions = chat_sessions
        self.interval_seconds = max(0.1, float(interval_seconds))
        self.session_max_idle_seconds = session_max_idle_seconds
        self.stats = MaintenanceStats()
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    def run_once(self) -> MaintenanceStats:
        """Perform one maintenance pass."""
        self.stats.runs += 1
        self.stats.identities_swept += self.rate_limiter.sweep()
        self.stats.sessions_pruned += self.chat_sessions.prune_idle(self.session_max_idle_seconds)
        return self.stats

    async def start(self) -> None:
        """Start the background loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None

    async def _run(self) -> None:
        while not self._stopping.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            if self._stopping.is_set():
                return
            try:
                self.run_once()
            except Exception:  # pragma: no cover - keep the loop alive
                logger.exception("Maintenance pass failed")
