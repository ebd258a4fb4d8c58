"""Server-side storage of upstream chat session credentials."""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any, Final

logger = logging.getLogger(__name__)

# Smallest step used to keep ``updated_at`` strictly increasing per record.
_UPDATE_EPSILON: Final[float] = 1e-6
_IMMUTABLE_FIELDS: Final[frozenset[str]] = frozenset({"did", "updated_at"})


@dataclass(frozen=True)
class ChatSessionRecord:
    """Upstream credentials for one account."""

    did: str
    handle: str
    pds_endpoint: str
    access_jwt: str
    refresh_jwt: str | None = None
    updated_at: float = 0.0


class ChatSessionStore:
    """Keyed store holding at most one session record per DID.

    Records are never expired implicitly on read. Callers evict them with
    :meth:`remove` (logout, rejected refresh) or :meth:`prune_idle`.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._records: dict[str, ChatSessionRecord] = {}
        self._lock = Lock()

    def _next_timestamp(self, previous: ChatSessionRecord | None) -> float:
        now = self._clock()
        if previous is not None and now <= previous.updated_at:
            return previous.updated_at + _UPDATE_EPSILON
        return now

    def save(self, record: ChatSessionRecord) -> ChatSessionRecord:
        """Insert or replace the record for ``record.did``."""
        with self._lock:
            stored = dataclasses.replace(
                record, updated_at=self._next_timestamp(self._records.get(record.did))
            )
            self._records[record.did] = stored
        logger.debug("Saved chat session for %s", record.did)
        return stored

    def get(self, did: str) -> ChatSessionRecord | None:
        """Return the record for ``did`` if one was saved."""
        with self._lock:
            return self._records.get(did)

    def update(self, did: str, /, **changes: Any) -> ChatSessionRecord | None:
        """Merge ``changes`` into an existing record.

        Returns:
            The updated record, or None when no record exists for ``did``
            (nothing is created in that case).

        Raises:
            ValueError: If ``changes`` names an unknown or immutable field.
        """
        known = {f.name for f in dataclasses.fields(ChatSessionRecord)}
        invalid = set(changes) - (known - _IMMUTABLE_FIELDS)
        if invalid:
            raise ValueError(f"Cannot update chat session fields: {sorted(invalid)}")

        with self._lock:
            current = self._records.get(did)
            if current is None:
                return None
            updated = dataclasses.replace(
                current, **changes, updated_at=self._next_timestamp(current)
            )
            self._records[did] = updated
            return updated

    def remove(self, did: str) -> bool:
        """Delete the record for ``did``; return True if one existed."""
        with self._lock:
            removed = self._records.pop(did, None) is not None
        if removed:
            logger.debug("Removed chat session for %s", did)
        return removed

    def prune_idle(self, max_idle_seconds: float) -> int:
        """Remove records not written within ``max_idle_seconds``."""
        cutoff = self._clock() - max_idle_seconds
        with self._lock:
            stale = [did for did, record in self._records.items() if record.updated_at < cutoff]
            for did in stale:
                del self._records[did]
        if stale:
            logger.info("Pruned %d idle chat sessions", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, did: object) -> bool:
        with self._lock:
            return did in self._records
