"""
Tab Pipeline

Processes one tab: screenshot -> content extraction -> summarize -> embed ->
persist. Each provider call goes through the rate limiter named after its
stage and is retried according to the retry policy.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from tabqueue.exceptions import DownstreamError
from tabqueue.jobs.context import ItemContext
from tabqueue.jobs.registry import RateLimiterRegistry
from tabqueue.jobs.retry import RetryPolicy
from tabqueue.pipeline.base import (
    ContentExtractor,
    Embedder,
    ScreenshotProvider,
    Summarizer,
    TabItem,
    TabResult,
    TabStore
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

SCREENSHOTS = 'screenshots'
CONTENT_EXTRACTION = 'content_extraction'
SUMMARIZATION = 'summarization'
EMBEDDINGS = 'embeddings'
PERSISTENCE = 'persistence'

STAGES = (SCREENSHOTS, CONTENT_EXTRACTION, SUMMARIZATION, EMBEDDINGS)


class TabPipeline:
    """
    Item processor for bulk tab imports.

    Stages listed in optional_stages log a warning and are skipped when they
    fail; any other failure fails the item. A tab only counts as processed
    once the store has saved it.

    Usage:
        pipeline = TabPipeline(
            registry,
            screenshotter=screenshots,
            summarizer=gemini,
            embedder=jina,
            store=SqlTabStore(db)
        )
        result = await pipeline.process(TabItem(url='https://example.com'), context)
    """

    def __init__(
        self,
        registry: RateLimiterRegistry,
        screenshotter: ScreenshotProvider,
        summarizer: Summarizer,
        embedder: Embedder,
        store: TabStore,
        extractor: Optional[ContentExtractor] = None,
        retry_policy: Optional[RetryPolicy] = None,
        step_timeout: Optional[float] = None,
        optional_stages: Iterable[str] = ()
    ):
        self.registry = registry
        self.screenshotter = screenshotter
        self.summarizer = summarizer
        self.embedder = embedder
        self.store = store
        self.extractor = extractor
        self.retry_policy = retry_policy or RetryPolicy.none()
        self.step_timeout = step_timeout

        self.optional_stages = frozenset(optional_stages)
        unknown = self.optional_stages - set(STAGES)
        if unknown:
            raise ValueError(f"Unknown optional stages: {', '.join(sorted(unknown))}")

    @classmethod
    def from_config(
        cls,
        config,
        registry: RateLimiterRegistry,
        **providers: Any
    ) -> 'TabPipeline':
        """Build a pipeline using the 'pipeline' section of a TabQueueConfig"""
        pipeline_config = config.get_pipeline_config()
        step_timeout = pipeline_config.get('step_timeout_seconds')
        return cls(
            registry,
            retry_policy=RetryPolicy.from_dict(pipeline_config.get('retry') or {}),
            step_timeout=float(step_timeout) if step_timeout else None,
            optional_stages=pipeline_config.get('optional_stages') or (),
            **providers
        )

    async def process(self, item: Any, context: ItemContext) -> TabResult:
        """
        Process one tab.

        Raises:
            DownstreamError: If a required stage or persistence failed
        """
        if not isinstance(item, TabItem):
            item = TabItem.model_validate(item)

        result = TabResult(item=item, title=item.title)

        result.screenshots = await self._run_stage(
            SCREENSHOTS, lambda: self.screenshotter.capture(item.url), context, result
        )

        if self.extractor is not None:
            result.content = await self._run_stage(
                CONTENT_EXTRACTION, lambda: self.extractor.extract(item.url), context, result
            )
            if result.content and result.content.title:
                result.title = result.content.title.strip()[:255]

        text = result.content.content if result.content else (result.title or '')
        result.summary = await self._run_stage(
            SUMMARIZATION, lambda: self.summarizer.summarize(item.url, text), context, result
        )

        embedding_text = '\n'.join(
            part for part in (
                result.title,
                result.summary.summary if result.summary else None,
                item.url
            ) if part
        )
        result.embedding = await self._run_stage(
            EMBEDDINGS, lambda: self.embedder.embed(embedding_text), context, result
        )

        result.tab_id = await self._persist(result, context)
        logger.debug(f"Processed tab {item.url} for job {context.job_id}")
        return result

    async def _run_stage(
        self,
        stage: str,
        call: Callable[[], Awaitable[T]],
        context: ItemContext,
        result: TabResult
    ) -> Optional[T]:
        limiter = self.registry.get(stage)

        async def attempt() -> T:
            return await limiter.submit(lambda: self._with_timeout(call()))

        try:
            return await self.retry_policy.run(attempt)
        except DownstreamError as e:
            if stage not in self.optional_stages:
                raise
            logger.warning(
                f"Optional stage {stage} failed for item {context.item_index} "
                f"of job {context.job_id}: {e}"
            )
            result.skipped_stages.append(stage)
            return None

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        if self.step_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.step_timeout)

    async def _persist(self, result: TabResult, context: ItemContext) -> str:
        try:
            return await self.store.save(context.owner_id, context.job_id, result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to store item {context.item_index} of job {context.job_id}: {e}"
            )
            raise DownstreamError(f"Persistence failed: {e}", service_name=PERSISTENCE) from e
