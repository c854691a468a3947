"""
Ordered, short-circuiting admission control over a tuple of tiers.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from shared.logging import get_logger
from shared.metrics import MetricsCollector

from service_gateway.app.ratelimit.counter_store import CounterStore
from service_gateway.app.ratelimit.tiers import RateLimitTier, UNKNOWN_CALLER


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of one admission check."""

    allowed: bool
    violated_tier: Optional[str] = None
    reset_at: Optional[datetime] = None
    message: Optional[str] = None
    degraded: bool = False

    @classmethod
    def admit(cls, degraded: bool = False) -> "AdmissionDecision":
        return cls(allowed=True, degraded=degraded)

    @classmethod
    def deny(cls, tier: RateLimitTier, reset_at: datetime) -> "AdmissionDecision":
        return cls(allowed=False, violated_tier=tier.id, reset_at=reset_at, message=tier.message)


class RateLimitCoordinator:
    """Evaluates tiers in order and stops at the first violation.

    Tiers after a violation are never incremented. A violated tier is still
    charged. If the counter store is unreachable every tier is treated as
    passed, whatever the store raised.
    """

    def __init__(self, name: str, tiers: Sequence[RateLimitTier], store: CounterStore,
                 metrics: Optional[MetricsCollector] = None):
        self.name = name
        self.tiers = tuple(tiers)
        self.store = store
        self.metrics = metrics
        self.logger = get_logger(f"gateway.rate_limit.{name}")

    async def admit(self, caller_identity: Optional[str]) -> AdmissionDecision:
        caller = caller_identity or UNKNOWN_CALLER

        try:
            for tier in self.tiers:
                record = await self.store.increment(tier.counter_key(caller), tier.window)
                if record.count > tier.limit:
                    self.logger.warning(
                        "Rate limit hit",
                        tier=tier.id,
                        caller=caller,
                        count=record.count,
                        limit=tier.limit,
                        reset_at=record.reset_at.isoformat(),
                    )
                    self._record("denied", tier.id)
                    return AdmissionDecision.deny(tier, record.reset_at)
        except Exception as e:
            # Any store failure fails open, not only CounterStoreError
            self.logger.warning(
                "Rate limiting degraded, admitting request",
                error=str(e),
                error_type=type(e).__name__,
                store=self.store.name,
            )
            if self.metrics:
                self.metrics.increment_counter("rate_limit_degraded_total", route=self.name)
            return AdmissionDecision.admit(degraded=True)

        self._record("allowed", "none")
        return AdmissionDecision.admit()

    def _record(self, decision: str, tier: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(
                "rate_limit_decisions_total", route=self.name, decision=decision, tier=tier
            )
