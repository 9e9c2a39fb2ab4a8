"""Bounded exponential backoff for transient gateway failures."""

import asyncio
import random
from collections.abc import Awaitable, Callable

import structlog

from payments.gateway.port import GatewayNetworkError

logger = structlog.get_logger(__name__)


class RetryPolicy:
    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 5.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable: tuple[type[Exception], ...] = (GatewayNetworkError,),
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable = retryable

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay

    async def run(self, func: Callable[..., Awaitable], *args, **kwargs):
        """Call ``func`` until it succeeds, fails non-retryably, or attempts run out.

        The last retryable exception is re-raised when attempts are exhausted.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await func(*args, **kwargs)
            except self.retryable as exc:
                if attempt == self.max_attempts:
                    logger.error(
                        "Retry attempts exhausted",
                        operation=getattr(func, "__name__", repr(func)),
                        attempts=attempt,
                        error=str(exc),
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Transient failure, retrying",
                    operation=getattr(func, "__name__", repr(func)),
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay=round(delay, 3),
                    error=str(exc),
                )
                await asyncio.sleep(delay)
