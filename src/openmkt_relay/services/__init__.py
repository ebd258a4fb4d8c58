# src/openmkt_relay/services/__init__.py
"""Business logic services for the relay."""

from .atproto import AtprotoAgent, AtprotoSession
from .bot import BotAgentProvider
from .chat_proxy import ChatProxy
from .chat_relay import ChatRelayClient
from .chat_sessions import ChatSessionRecord, ChatSessionStore
from .rate_limiter import RateLimiter, RedisRateLimiter
from .service_auth import ServiceAuthTokenBroker

__all__ = [
    "AtprotoAgent",
    "AtprotoSession",
    "BotAgentProvider",
    "ChatProxy",
    "ChatRelayClient",
    "ChatSessionRecord",
    "ChatSessionStore",
    "RateLimiter",
    "RedisRateLimiter",
    "ServiceAuthTokenBroker",
]
