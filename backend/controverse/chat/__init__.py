"""Real-time chat room.

Provides the shared room behind the WebSocket endpoint:
- ParticipantRegistry: who is connected and their session attributes
- HistoryStore: bounded log of recent messages
- RateLimiter: per-participant burst limiting with deferred decay
- ProfanityFilter: static denylist masking
- BroadcastCoordinator: applies client events and emits the results
"""
from .coordinator import BroadcastCoordinator
from .history import HistoryStore
from .profanity import ProfanityFilter
from .rate_limiter import RateLimiter
from .registry import ConnectionAlreadyRegistered, ParticipantRegistry

__all__ = [
    "BroadcastCoordinator",
    "ConnectionAlreadyRegistered",
    "HistoryStore",
    "ParticipantRegistry",
    "ProfanityFilter",
    "RateLimiter",
]
