"""
subline.transcribe.retry - Jittered exponential backoff within a time budget.

The policy knows nothing about what it wraps: it awaits an operation,
retries on TranscriptionError, and gives up with the last error once the
next delay would overrun the elapsed-time budget.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from subline.exceptions import TranscriptionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def proportional_jitter(delay: float) -> float:
    """Scale a delay by a random factor in [0.8, 1.2]."""
    return delay * random.uniform(0.8, 1.2)


def no_jitter(delay: float) -> float:
    return delay


@dataclass
class RetryPolicy:
    """Exponential backoff starting at initial_delay, capped by max_elapsed seconds."""

    initial_delay: float = 0.2
    multiplier: float = 2.0
    max_elapsed: float = 10.0
    jitter: Callable[[float], float] = proportional_jitter
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)

    def __post_init__(self) -> None:
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.multiplier < 1:
            raise ValueError("multiplier must be at least 1")
        if self.max_elapsed <= 0:
            raise ValueError("max_elapsed must be positive")

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Await operation until it succeeds or the budget runs out.

        Raises:
            TranscriptionError: The last failure, unchanged, once no further
                retry fits inside max_elapsed
        """
        started = self.clock()
        delay = self.initial_delay

        while True:
            try:
                return await operation()
            except TranscriptionError as e:
                wait = self.jitter(delay)
                elapsed = self.clock() - started
                if elapsed + wait > self.max_elapsed:
                    logger.debug("Retry budget exhausted after %.2fs", elapsed)
                    raise
                logger.info("Transcription failed (%s), retrying in %.2fs", e.reason, wait)
                await self.sleep(wait)
                delay *= self.multiplier


def create_policy_from_config(config: Any) -> RetryPolicy:
    """Create a RetryPolicy from SublineConfig.retry."""
    retry = config.retry
    return RetryPolicy(
        initial_delay=retry.initial_delay,
        multiplier=retry.multiplier,
        max_elapsed=retry.max_elapsed,
        jitter=proportional_jitter if retry.jitter else no_jitter,
    )
