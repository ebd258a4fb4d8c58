# src/openmkt_relay/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    admin_router,
    chat_router,
    marketplace_router,
    notify_router,
)

__all__ = [
    "notify_router",
    "chat_router",
    "marketplace_router",
    "admin_router",
]
