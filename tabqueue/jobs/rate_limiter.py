"""
Rate Limiter

Paces calls to one named downstream service (screenshots, summarization,
embeddings, ...). Supports:
- Sliding-window request budget
- Concurrency ceiling
- Strict FIFO admission of queued calls
"""

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from functools import wraps
from typing import Any, Awaitable, Callable, Deque, Dict, TypeVar

from tabqueue.exceptions import Cancelled, DownstreamError

logger = logging.getLogger(__name__)

T = TypeVar('T')

RETRYABLE_EXCEPTIONS = (asyncio.TimeoutError, TimeoutError, ConnectionError)


@dataclass(frozen=True)
class RateLimitConfig:
    """Rate limit configuration for one downstream service"""
    service_name: str
    requests_per_window: int = 60
    window_duration: float = 60.0  # seconds
    max_concurrent: int = 1

    def __post_init__(self):
        if not self.service_name:
            raise ValueError("service_name cannot be empty")
        if self.requests_per_window < 1:
            raise ValueError("requests_per_window must be at least 1")
        if self.window_duration <= 0:
            raise ValueError("window_duration must be positive")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

    @classmethod
    def from_dict(cls, service_name: str, data: Dict[str, Any]) -> 'RateLimitConfig':
        """Build from a 'rate_limits' entry of the YAML configuration"""
        return cls(
            service_name=service_name,
            requests_per_window=int(data.get('requests_per_window', 60)),
            window_duration=float(data.get('window_seconds', data.get('window_duration', 60.0))),
            max_concurrent=int(data.get('max_concurrent', 1))
        )


class RateLimiter:
    """
    Rate limiter for one downstream service.

    Calls are queued in submission order. The head of the queue is admitted
    once fewer than max_concurrent calls are in flight and fewer than
    requests_per_window calls were admitted during the last window_duration
    seconds. A call that fails still used its window slot.

    Usage:
        limiter = RateLimiter(RateLimitConfig('summarization', 60, 60.0, 4))

        summary = await limiter.submit(lambda: summarizer.summarize(url, text))

        limiter.get_status()
    """

    def __init__(
        self,
        config: RateLimitConfig,
        clock: Callable[[], float] = time.monotonic
    ):
        self.config = config
        self._clock = clock

        # Admission state, guarded by _cond for waiters and by _state_lock for
        # readers on other threads
        self._cond = asyncio.Condition()
        self._state_lock = threading.Lock()
        self._pending: Deque[object] = deque()
        self._history: Deque[float] = deque()
        self._in_flight = 0
        self._closed = False

        # Metrics
        self._admitted_count = 0
        self._failed_count = 0

    @property
    def service_name(self) -> str:
        return self.config.service_name

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, task: Callable[[], Awaitable[T]]) -> T:
        """
        Run a task once the limiter admits it.

        Args:
            task: Zero-argument callable returning an awaitable

        Returns:
            The task's result

        Raises:
            DownstreamError: If the task failed
            Cancelled: If the limiter was shut down before the task ran
        """
        await self._acquire()
        try:
            return await task()
        except DownstreamError as e:
            self._failed_count += 1
            if e.service_name is None:
                e.service_name = self.service_name
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed_count += 1
            raise DownstreamError(
                str(e) or type(e).__name__,
                service_name=self.service_name,
                retryable=isinstance(e, RETRYABLE_EXCEPTIONS)
            ) from e
        finally:
            await self._release()

    async def _acquire(self) -> None:
        """Wait until this caller is at the head of the queue and has capacity"""
        ticket = object()

        async with self._cond:
            if self._closed:
                raise Cancelled(f"Rate limiter {self.service_name} is shut down")

            with self._state_lock:
                self._pending.append(ticket)

            try:
                while True:
                    if self._closed:
                        raise Cancelled(f"Rate limiter {self.service_name} is shut down")

                    if self._pending[0] is ticket and self._in_flight < self.config.max_concurrent:
                        wait_time = self._window_wait()
                        if wait_time <= 0:
                            break

                        logger.debug(f"{self.service_name} rate limited, waiting {wait_time:.2f}s")
                        try:
                            await asyncio.wait_for(self._cond.wait(), timeout=wait_time)
                        except asyncio.TimeoutError:
                            pass
                        continue

                    await self._cond.wait()

            except BaseException:
                with self._state_lock:
                    try:
                        self._pending.remove(ticket)
                    except ValueError:
                        pass
                self._cond.notify_all()
                raise

            with self._state_lock:
                self._pending.popleft()
                self._in_flight += 1
                self._history.append(self._clock())
                self._admitted_count += 1

            # The next caller in line may be admissible too
            self._cond.notify_all()

    async def _release(self) -> None:
        # Free the slot before any await so a second cancel cannot leak it
        with self._state_lock:
            self._in_flight -= 1
        await asyncio.shield(self._notify_waiters())

    async def _notify_waiters(self) -> None:
        async with self._cond:
            self._cond.notify_all()

    def _window_wait(self) -> float:
        """Seconds until the window has room, pruning expired admissions"""
        now = self._clock()
        horizon = now - self.config.window_duration

        with self._state_lock:
            while self._history and self._history[0] <= horizon:
                self._history.popleft()

            if len(self._history) < self.config.requests_per_window:
                return 0.0

            window_start = self._history[0]

        return window_start + self.config.window_duration - now

    def get_status(self) -> Dict[str, Any]:
        """
        Get current limiter status.

        Does not mutate state; safe to call from any thread.

        next_available_slot_eta is now when nobody is queued, and otherwise
        when the window frees a slot for the head of the queue. It is None
        while queued calls wait on the concurrency ceiling, since that depends
        on how long the in-flight calls take.
        """
        with self._state_lock:
            now = self._clock()
            horizon = now - self.config.window_duration
            recent = [t for t in self._history if t > horizon]
            queue_depth = len(self._pending)
            in_flight = self._in_flight
            closed = self._closed

        if len(recent) < self.config.requests_per_window:
            next_request_in = 0.0
        else:
            next_request_in = max(0.0, recent[0] + self.config.window_duration - now)

        now_utc = datetime.now(timezone.utc)
        if queue_depth == 0:
            eta = now_utc
        elif in_flight >= self.config.max_concurrent:
            eta = None
        else:
            eta = now_utc + timedelta(seconds=next_request_in)

        return {
            'service_name': self.service_name,
            'queue_depth': queue_depth,
            'in_flight': in_flight,
            'requests_in_current_window': len(recent),
            'next_available_slot_eta': eta.isoformat() if eta else None,
            'next_request_in': round(next_request_in, 3),
            'requests_per_window': self.config.requests_per_window,
            'window_duration': self.config.window_duration,
            'max_concurrent': self.config.max_concurrent,
            'admitted_count': self._admitted_count,
            'failed_count': self._failed_count,
            'closed': closed
        }

    async def shutdown(self) -> int:
        """
        Stop admitting calls.

        Callers still waiting in the queue fail with Cancelled; calls already
        in flight run to completion.

        Returns:
            Number of queued calls that were cancelled
        """
        async with self._cond:
            with self._state_lock:
                self._closed = True
                cancelled = len(self._pending)
            self._cond.notify_all()

        if cancelled:
            logger.info(f"Cancelled {cancelled} pending {self.service_name} requests")
        return cancelled

    def limit(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """
        Decorator to rate limit a coroutine function.

        Usage:
            @limiter.limit
            async def capture(url):
                ...
        """
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await self.submit(lambda: func(*args, **kwargs))
        return wrapper
