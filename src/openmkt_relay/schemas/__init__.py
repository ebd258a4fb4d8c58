# src/openmkt_relay/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .chat import ChatSessionCreate, ChatSessionResponse
from .common import CamelModel, SuccessResponse
from .marketplace import RegisterRequest, RegisterResponse, ReportRequest
from .notify import NotifyRequest, NotifyResponse, RateLimitStatusResponse

__all__ = [
    "CamelModel", "SuccessResponse",
    "ChatSessionCreate", "ChatSessionResponse",
    "NotifyRequest", "NotifyResponse", "RateLimitStatusResponse",
    "RegisterRequest", "RegisterResponse", "ReportRequest",
]
