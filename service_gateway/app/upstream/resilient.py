"""
Bounded retry around a single upstream client.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryState, calculate_delay

from service_gateway.app.upstream.outcomes import (
    FailureKind,
    FatalFailure,
    Success,
    to_outcome,
)


class UpstreamClient(Protocol):
    async def send(self, payload: Any) -> Any:
        ...


class ResilientCaller:
    """Calls an upstream client, retrying only overload failures.

    ``call`` never returns a ``TransientFailure``: once the retry budget is
    spent an overload becomes ``FatalFailure(UNAVAILABLE)``.
    """

    def __init__(self, client: UpstreamClient, config: Optional[RetryConfig] = None,
                 metrics: Optional[MetricsCollector] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.client = client
        self.config = config or RetryConfig()
        self.metrics = metrics
        self.sleep = sleep
        self.logger = get_logger("gateway.resilient_caller")

    async def call(self, payload: Any, max_attempts: Optional[int] = None,
                   base_delay: Optional[float] = None) -> Union[Success, FatalFailure]:
        state = RetryState(
            max_attempts=self.config.max_attempts if max_attempts is None else max_attempts,
            base_delay=self.config.base_delay if base_delay is None else base_delay,
        )
        backoff = RetryConfig(
            max_attempts=state.max_attempts,
            base_delay=state.base_delay,
            max_delay=self.config.max_delay,
            exponential_base=self.config.exponential_base,
            jitter=self.config.jitter,
            backoff_strategy=self.config.backoff_strategy,
        )

        while True:
            calls = state.attempt + 1
            try:
                result = await self.client.send(payload)
            except Exception as e:
                outcome = to_outcome(e, attempts=calls)
            else:
                self._record("success")
                if state.attempt:
                    self.logger.info("Upstream call succeeded after retry", attempts=calls)
                return Success(payload=result, attempts=calls)

            self._record(outcome.kind.value)

            if isinstance(outcome, FatalFailure):
                self.logger.error(
                    "Upstream call failed",
                    kind=outcome.kind.value,
                    attempts=calls,
                    error=outcome.message,
                )
                return outcome

            if state.exhausted:
                self.logger.error(
                    "All retry attempts exhausted",
                    kind=outcome.kind.value,
                    attempts=calls,
                    error=str(outcome.cause),
                )
                return FatalFailure(kind=FailureKind.UNAVAILABLE, cause=outcome.cause, attempts=calls)

            state.attempt += 1
            delay = calculate_delay(state.attempt, backoff)
            self.logger.warning(
                "Upstream overloaded, retrying",
                retry=state.attempt,
                max_retries=state.max_attempts,
                delay=delay,
            )
            await self.sleep(delay)

    def _record(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("upstream_attempts_total", outcome=outcome)

