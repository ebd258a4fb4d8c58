"""Sliding-window rate limiting for interest notifications.

Two backends share one interface:

- :class:`RateLimiter` keeps timestamps in process memory. History is lost on
  restart, which only resets everybody's allowance.
- :class:`RedisRateLimiter` keeps one sorted set per identity so several
  service processes share the same allowance.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Final, Protocol

import redis

from openmkt_relay.core.settings import Settings

logger = logging.getLogger(__name__)

SECONDS_PER_MINUTE: Final[int] = 60
DEFAULT_WINDOW_SECONDS: Final[int] = 60 * 60
DEFAULT_MAX_REQUESTS: Final[int] = 5


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a check-and-record call."""

    admitted: bool
    remaining: int
    reset_in_minutes: int
    reason: str | None = None


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only view of an identity's current allowance."""

    requests_used: int
    remaining: int
    reset_in_minutes: int


class RateLimitBackend(Protocol):
    """Interface shared by the in-memory and Redis limiters."""

    window_seconds: int
    max_requests: int

    def check_and_record(self, identity: str) -> RateLimitDecision: ...

    def status(self, identity: str) -> RateLimitStatus: ...

    def sweep(self) -> int: ...


def _describe_window(window_seconds: int) -> str:
    if window_seconds == DEFAULT_WINDOW_SECONDS:
        return "per hour"
    return f"every {max(1, window_seconds // SECONDS_PER_MINUTE)} minutes"


def limit_message(max_requests: int, window_seconds: int, reset_in_minutes: int) -> str:
    """Return the user-facing explanation for a rejected request."""
    return (
        f"You've reached the limit of {max_requests} interest requests "
        f"{_describe_window(window_seconds)}. Please wait {reset_in_minutes} minutes "
        f"before trying again."
    )


def minutes_left(seconds: float) -> int:
    """Return ``seconds`` as whole minutes, rounded up and at least one."""
    return max(1, math.ceil(seconds / SECONDS_PER_MINUTE))


@dataclass
class _Entry:
    timestamps: list[float] = field(default_factory=list)
    lock: Lock = field(default_factory=Lock)


class RateLimiter:
    """In-memory sliding-window limiter keyed by identity (usually a DID)."""

    def __init__(
        self,
        *,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("window_seconds and max_requests must be positive")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._registry_lock = Lock()

    def _prune(self, timestamps: list[float], now: float) -> list[float]:
        return [ts for ts in timestamps if now - ts < self.window_seconds]

    def _reset_minutes(self, timestamps: list[float], now: float) -> int:
        if not timestamps:
            return minutes_left(self.window_seconds)
        return minutes_left(self.window_seconds - (now - min(timestamps)))

    def _locked_entry(self, identity: str) -> _Entry:
        """Return the identity's entry with its lock held by the caller.

        ``sweep`` may drop an entry between lookup and acquisition, so the
        lookup is repeated until the acquired entry is still registered.
        """
        while True:
            with self._registry_lock:
                entry = self._entries.get(identity)
                if entry is None:
                    entry = _Entry()
                    self._entries[identity] = entry
            entry.lock.acquire()
            if self._entries.get(identity) is entry:
                return entry
            entry.lock.release()

    def check_and_record(self, identity: str) -> RateLimitDecision:
        """Admit and record a request, or reject it without recording."""
        entry = self._locked_entry(identity)
        try:
            now = self._clock()
            entry.timestamps = self._prune(entry.timestamps, now)

            if len(entry.timestamps) >= self.max_requests:
                reset_in = self._reset_minutes(entry.timestamps, now)
                logger.info("Rate limit reached for %s; resets in %d min", identity, reset_in)
                return RateLimitDecision(
                    admitted=False,
                    remaining=0,
                    reset_in_minutes=reset_in,
                    reason=limit_message(self.max_requests, self.window_seconds, reset_in),
                )

            entry.timestamps.append(now)
            return RateLimitDecision(
                admitted=True,
                remaining=self.max_requests - len(entry.timestamps),
                reset_in_minutes=self._reset_minutes(entry.timestamps, now),
            )
        finally:
            entry.lock.release()

    def status(self, identity: str) -> RateLimitStatus:
        """Return the current allowance without recording anything."""
        now = self._clock()
        entry = self._entries.get(identity)
        if entry is None:
            return RateLimitStatus(
                requests_used=0,
                remaining=self.max_requests,
                reset_in_minutes=self._reset_minutes([], now),
            )

        with entry.lock:
            surviving = self._prune(entry.timestamps, now)
        return RateLimitStatus(
            requests_used=len(surviving),
            remaining=max(0, self.max_requests - len(surviving)),
            reset_in_minutes=self._reset_minutes(surviving, now),
        )

    def sweep(self) -> int:
        """Drop identities whose timestamps have all aged out.

        Returns:
            Number of identities removed.
        """
        removed = 0
        with self._registry_lock:
            for identity in list(self._entries):
                entry = self._entries[identity]
                # Busy entries are in use right now and therefore not stale.
                if not entry.lock.acquire(blocking=False):
                    continue
                try:
                    entry.timestamps = self._prune(entry.timestamps, self._clock())
                    if not entry.timestamps:
                        del self._entries[identity]
                        removed += 1
                finally:
                    entry.lock.release()
        if removed:
            logger.debug("Rate limiter sweep removed %d idle identities", removed)
        return removed

    def __len__(self) -> int:
        return len(self._entries)


# Prune, count and conditionally record in one atomic step.
_CHECK_AND_RECORD_LUA: Final[str] = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count >= limit then
  local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
  return {0, count, oldest[2]}
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('PEXPIRE', key, window)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {1, count + 1, oldest[2]}
"""


class RedisRateLimiter:
    """Sliding-window limiter shared between processes through Redis."""

    key_prefix = "ratelimit:interest:"

    def __init__(
        self,
        client: Any,
        *,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("window_seconds and max_requests must be positive")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._redis = client
        self._script = client.register_script(_CHECK_AND_RECORD_LUA)

    def _key(self, identity: str) -> str:
        return f"{self.key_prefix}{identity}"

    def check_and_record(self, identity: str) -> RateLimitDecision:
        now = self._clock()
        now_ms = int(now * 1000)
        window_ms = self.window_seconds * 1000
        member = f"{now_ms}-{uuid.uuid4().hex}"
        admitted, count, oldest = self._script(
            keys=[self._key(identity)],
            args=[now_ms, window_ms, self.max_requests, member],
        )
        oldest_ms = int(float(oldest)) if oldest is not None else now_ms
        reset_in = minutes_left((window_ms - (now_ms - oldest_ms)) / 1000)

        if not int(admitted):
            logger.info("Rate limit reached for %s; resets in %d min", identity, reset_in)
            return RateLimitDecision(
                admitted=False,
                remaining=0,
                reset_in_minutes=reset_in,
                reason=limit_message(self.max_requests, self.window_seconds, reset_in),
            )
        return RateLimitDecision(
            admitted=True,
            remaining=max(0, self.max_requests - int(count)),
            reset_in_minutes=reset_in,
        )

    def status(self, identity: str) -> RateLimitStatus:
        now = self._clock()
        now_ms = int(now * 1000)
        window_ms = self.window_seconds * 1000
        entries = self._redis.zrangebyscore(
            self._key(identity), f"({now_ms - window_ms}", "+inf", withscores=True
        )
        if not entries:
            reset_in = minutes_left(self.window_seconds)
        else:
            oldest_ms = int(min(score for _, score in entries))
            reset_in = minutes_left((window_ms - (now_ms - oldest_ms)) / 1000)
        return RateLimitStatus(
            requests_used=len(entries),
            remaining=max(0, self.max_requests - len(entries)),
            reset_in_minutes=reset_in,
        )

    def sweep(self) -> int:
        """Keys expire on their own after one window, so nothing to do."""
        return 0


def build_rate_limiter(config: Settings) -> RateLimitBackend:
    """Create the limiter selected by ``RATE_LIMIT_BACKEND``."""
    backend = config.rate_limit_backend.lower()
    if backend == "memory":
        return RateLimiter(
            window_seconds=config.rate_limit_window_seconds,
            max_requests=config.rate_limit_max_requests,
        )
    if backend == "redis":
        client = redis.from_url(config.redis_url)  # type: ignore[no-untyped-call]
        return RedisRateLimiter(
            client,
            window_seconds=config.rate_limit_window_seconds,
            max_requests=config.rate_limit_max_requests,
        )
    raise ValueError(f"Unknown rate limit backend: {config.rate_limit_backend}")
