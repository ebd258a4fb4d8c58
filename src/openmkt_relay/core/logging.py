"""Logging setup for the relay service."""

from __future__ import annotations

import logging

from openmkt_relay.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Apply the configured log level to the root logger.

    Args:
        level: Optional level name overriding ``settings.log_level``.
    """
    resolved = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger().setLevel(resolved)
    # httpx logs every request at INFO; keep it quiet unless debugging
    if resolved != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
