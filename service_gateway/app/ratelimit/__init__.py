"""
Rate limiting package for the Gateway.

Holds the quota tiers, the counter stores they are charged against and the
coordinator that evaluates them in priority order for each request.
"""

from .counter_store import (
    CounterRecord,
    CounterStore,
    DisabledCounterStore,
    LocalCounterStore,
    RedisCounterStore,
    build_counter_store,
)
from .coordinator import AdmissionDecision, RateLimitCoordinator
from .tiers import RateLimitTier, chat_tiers, speech_tiers

__all__ = [
    "AdmissionDecision",
    "CounterRecord",
    "CounterStore",
    "DisabledCounterStore",
    "LocalCounterStore",
    "RateLimitCoordinator",
    "RateLimitTier",
    "RedisCounterStore",
    "build_counter_store",
    "chat_tiers",
    "speech_tiers",
]
