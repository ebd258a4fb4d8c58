# src/openmkt_relay/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .admin import router as admin_router
from .chat import router as chat_router
from .marketplace import router as marketplace_router
from .notify import router as notify_router

__all__ = [
    "admin_router",
    "chat_router",
    "marketplace_router",
    "notify_router",
]
