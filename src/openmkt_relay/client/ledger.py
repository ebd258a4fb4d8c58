"""Client-local record of listings the buyer already showed interest in."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Protocol

logger = logging.getLogger(__name__)

KEY_PREFIX = "interest-sent-"


def ledger_key(listing_uri: str) -> str:
    return f"{KEY_PREFIX}{listing_uri}"


class InterestLedger(Protocol):
    """Persists the only piece of flow state that survives a reload."""

    def was_sent(self, listing_uri: str) -> bool: ...

    def mark_sent(self, listing_uri: str) -> None: ...


class MemoryInterestLedger:
    """Ledger kept in a dict; shared between controllers in one process."""

    def __init__(self) -> None:
        self._flags: dict[str, bool] = {}

    def was_sent(self, listing_uri: str) -> bool:
        return self._flags.get(ledger_key(listing_uri), False)

    def mark_sent(self, listing_uri: str) -> None:
        self._flags[ledger_key(listing_uri)] = True


class JsonFileInterestLedger:
    """Ledger persisted as a flat JSON object of ``key -> true``.

    The file is rewritten through a temporary sibling and renamed into
    place, so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def _read(self) -> dict[str, bool]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt interest ledger at %s", self.path)
            return {}
        return {str(k): bool(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def was_sent(self, listing_uri: str) -> bool:
        with self._lock:
            return self._read().get(ledger_key(listing_uri), False)

    def mark_sent(self, listing_uri: str) -> None:
        with self._lock:
            data = self._read()
            data[ledger_key(listing_uri)] = True
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self.path)
