"""
Rate limit tiers.

A tier is a plain record plus one key-derivation function. Tier order is the
order of the tuple handed to the coordinator; the presets below list the
broadest constraint first.
"""

from dataclasses import dataclass
from typing import Callable, Tuple

from shared.config import BaseConfig

UNKNOWN_CALLER = "unknown"

DAY = 24 * 3600
MINUTE = 60


def global_key(caller_identity: str) -> str:
    """Every caller shares one counter."""
    return "global"


def caller_key(caller_identity: str) -> str:
    """One counter per caller; unidentified callers share a degraded bucket."""
    return caller_identity or UNKNOWN_CALLER


@dataclass(frozen=True)
class RateLimitTier:
    """One independently enforced quota policy."""

    id: str
    limit: int
    window: int
    key_fn: Callable[[str], str]
    prefix: str
    message: str = "Rate limit exceeded"

    def __post_init__(self):
        if self.limit < 0:
            raise ValueError(f"Tier {self.id}: limit must be >= 0")
        if self.window <= 0:
            raise ValueError(f"Tier {self.id}: window must be > 0")

    def counter_key(self, caller_identity: str) -> str:
        return f"{self.prefix}:{self.key_fn(caller_identity)}"


def chat_tiers(config: BaseConfig) -> Tuple[RateLimitTier, ...]:
    """Global daily, then global per-minute, then per-caller daily."""
    return (
        RateLimitTier(
            id="daily_limit",
            limit=config.chat_global_daily_limit,
            window=config.chat_global_daily_window,
            key_fn=global_key,
            prefix="global:daily",
            message="Daily request limit reached. Please try again tomorrow.",
        ),
        RateLimitTier(
            id="rpm_limit",
            limit=config.chat_global_rpm_limit,
            window=config.chat_global_rpm_window,
            key_fn=global_key,
            prefix="global:rpm",
            message="Too many requests per minute. Please wait a moment.",
        ),
        RateLimitTier(
            id="user_limit",
            limit=config.chat_user_daily_limit,
            window=config.chat_user_daily_window,
            key_fn=caller_key,
            prefix="user",
            message=(
                f"You have reached your daily limit of {config.chat_user_daily_limit} questions. "
                "Please try again tomorrow."
            ),
        ),
    )


def speech_tiers(config: BaseConfig) -> Tuple[RateLimitTier, ...]:
    """Global per-minute, then per-caller daily."""
    return (
        RateLimitTier(
            id="rpm_limit",
            limit=config.tts_global_rpm_limit,
            window=config.tts_global_rpm_window,
            key_fn=global_key,
            prefix="tts:global:rpm",
            message="Too many requests. Please wait a moment.",
        ),
        RateLimitTier(
            id="user_limit",
            limit=config.tts_user_daily_limit,
            window=config.tts_user_daily_window,
            key_fn=caller_key,
            prefix="tts:user",
            message="Daily TTS limit reached. Please try again tomorrow.",
        ),
    )
