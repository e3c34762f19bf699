"""
Retry policy for downstream calls

Exponential backoff with jitter. Only DownstreamErrors flagged retryable are
repeated; everything else surfaces on the first failure.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, TypeVar

from tabqueue.exceptions import DownstreamError

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration"""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    backoff_multiplier: float = 2.0
    jitter: float = 0.1  # fraction of the delay

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RetryPolicy':
        return cls(
            max_attempts=int(data.get('max_attempts', 3)),
            base_delay=float(data.get('base_delay', 1.0)),
            max_delay=float(data.get('max_delay', 10.0)),
            backoff_multiplier=float(data.get('backoff_multiplier', 2.0)),
            jitter=float(data.get('jitter', 0.1))
        )

    @classmethod
    def none(cls) -> 'RetryPolicy':
        """Single attempt, no retries"""
        return cls(max_attempts=1)

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt following `attempt` (1-based)"""
        delay = min(self.base_delay * (self.backoff_multiplier ** (attempt - 1)), self.max_delay)
        return delay + random.random() * self.jitter * delay

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        return isinstance(error, DownstreamError) and error.retryable

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an operation, retrying retryable failures.

        Args:
            operation: Zero-argument callable returning an awaitable; called
                once per attempt

        Returns:
            Result of the first successful attempt
        """
        attempt = 1
        while True:
            try:
                result = await operation()
                if attempt > 1:
                    logger.info(f"Operation succeeded on attempt {attempt}")
                return result
            except Exception as e:
                if not self.should_retry(e, attempt):
                    if attempt > 1:
                        logger.error(f"Operation failed after {attempt} attempts: {e}")
                    raise

                delay = self.delay_for(attempt)
                logger.info(
                    f"Attempt {attempt} failed ({e}), retrying in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{self.max_attempts})"
                )
                await asyncio.sleep(delay)
                attempt += 1
