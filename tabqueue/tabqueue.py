"""
TabQueue facade

Wires configuration, rate limiters, the tab pipeline and the queue manager
together for a single process.
"""

import logging
from typing import Any, Callable, Dict, Optional, Sequence

from pydantic import ValidationError

from tabqueue.config.tabqueue_config import TabQueueConfig
from tabqueue.exceptions import InvalidInput
from tabqueue.jobs.queue import QueueConfig, QueueManager
from tabqueue.jobs.registry import RateLimiterRegistry
from tabqueue.pipeline.base import (
    ContentExtractor,
    Embedder,
    ScreenshotProvider,
    Summarizer,
    TabItem,
    TabStore
)
from tabqueue.pipeline.tab_pipeline import TabPipeline
from tabqueue.service import BulkImportService

logger = logging.getLogger(__name__)


class TabQueue:
    """
    One bulk import system: registry, pipeline, queue and request handlers.

    Usage:
        async with TabQueue(
            screenshotter=screenshots,
            summarizer=gemini,
            embedder=jina,
            store=SqlTabStore(db)
        ) as tq:
            job_id = tq.submit('user_123', tabs)
            final = await tq.manager.wait_for(job_id)
    """

    def __init__(
        self,
        screenshotter: ScreenshotProvider,
        summarizer: Summarizer,
        embedder: Embedder,
        store: TabStore,
        extractor: Optional[ContentExtractor] = None,
        config: Optional[TabQueueConfig] = None
    ):
        self.config = config or TabQueueConfig()
        self.registry = RateLimiterRegistry.from_config(self.config)
        self.pipeline = TabPipeline.from_config(
            self.config,
            self.registry,
            screenshotter=screenshotter,
            summarizer=summarizer,
            embedder=embedder,
            store=store,
            extractor=extractor
        )
        self.manager = QueueManager(
            self.pipeline,
            self.registry,
            QueueConfig.from_config(self.config)
        )
        self.service = BulkImportService(self.manager)

    def submit(
        self,
        owner_id: str,
        items: Sequence[Any],
        on_progress: Optional[Callable[[Dict[str, Any]], None]] = None
    ) -> str:
        """
        Validate tabs and queue them as one job.

        Raises:
            InvalidInput: If any tab is malformed or the batch is empty
        """
        try:
            tabs = [item if isinstance(item, TabItem) else TabItem.model_validate(item) for item in items]
        except ValidationError as e:
            raise InvalidInput(f"Invalid tab: {e}") from e
        return self.manager.submit(owner_id, tabs, on_progress=on_progress)

    async def start(self) -> None:
        await self.manager.start()
        logger.info(
            f"TabQueue started (max {self.manager.config.max_concurrent_jobs} concurrent jobs, "
            f"services: {', '.join(sorted(self.config.get_rate_limits()))})"
        )

    async def shutdown(self) -> None:
        await self.manager.shutdown()

    async def __aenter__(self) -> 'TabQueue':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()
