"""
TabQueue - Bulk tab import scheduling

Accepts large batches of tabs and processes each one through screenshot
capture, AI summarization and embedding generation, pacing every downstream
service with its own rate limiter.

Basic usage:
    from tabqueue import TabQueue

    async with TabQueue(screenshotter=..., summarizer=..., embedder=..., store=...) as tq:
        job_id = tq.submit('user_123', [{'url': 'https://example.com'}])
        print(tq.manager.get_job_status(job_id))
"""

from tabqueue.config.tabqueue_config import TabQueueConfig, configure_logging
from tabqueue.exceptions import Cancelled, DownstreamError, InvalidInput, NotFound, TabQueueError
from tabqueue.tabqueue import TabQueue

__all__ = [
    'TabQueue',
    'TabQueueConfig',
    'configure_logging',
    'TabQueueError',
    'InvalidInput',
    'DownstreamError',
    'Cancelled',
    'NotFound'
]

__version__ = '0.1.0'
