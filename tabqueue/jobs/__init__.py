"""
TabQueue Jobs Module

Scheduling and rate-limiting core for bulk tab imports.

Components:
- QueueManager: Admits jobs, bounds concurrent workers, answers status queries
- JobWorker: Drains one job's items through the pipeline
- RateLimiter: Paces calls to one downstream service
- RateLimiterRegistry: Named limiters shared by all workers
"""

from .context import CancellationToken, ItemContext
from .models import Job, JobError, JobPhase, TERMINAL_PHASES
from .queue import QueueConfig, QueueManager
from .rate_limiter import RateLimitConfig, RateLimiter
from .registry import RateLimiterRegistry
from .retry import RetryPolicy
from .worker import JobWorker, WorkerState

__all__ = [
    # Queue
    'QueueManager',
    'QueueConfig',

    # Jobs
    'Job',
    'JobError',
    'JobPhase',
    'TERMINAL_PHASES',

    # Worker
    'JobWorker',
    'WorkerState',
    'CancellationToken',
    'ItemContext',

    # Rate limiting
    'RateLimiter',
    'RateLimitConfig',
    'RateLimiterRegistry',
    'RetryPolicy'
]
