"""
Tests for TabPipeline
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from pydantic import ValidationError

from tabqueue.config import TabQueueConfig
from tabqueue.exceptions import DownstreamError
from tabqueue.jobs.context import ItemContext
from tabqueue.jobs.rate_limiter import RateLimitConfig
from tabqueue.jobs.registry import RateLimiterRegistry
from tabqueue.jobs.retry import RetryPolicy
from tabqueue.pipeline import (
    DryRunContentExtractor,
    DryRunEmbedder,
    DryRunScreenshotProvider,
    DryRunSummarizer,
    InMemoryTabStore,
    TabItem,
    TabPipeline
)
from tabqueue.pipeline.base import SummaryResult
from tabqueue.pipeline.tab_pipeline import STAGES


def make_registry():
    return RateLimiterRegistry({
        name: RateLimitConfig(name, 1000, 60.0, 4) for name in STAGES
    })


def make_pipeline(registry=None, **overrides):
    providers = {
        'screenshotter': DryRunScreenshotProvider(),
        'summarizer': DryRunSummarizer(),
        'embedder': DryRunEmbedder(),
        'store': InMemoryTabStore(),
        'extractor': DryRunContentExtractor()
    }
    providers.update(overrides)
    return TabPipeline(registry or make_registry(), **providers)


def context(index=0):
    return ItemContext(job_id='job_test', owner_id='user_1', item_index=index)


class TestTabPipeline:
    """Tests for processing one tab"""

    @pytest.mark.asyncio
    async def test_all_stages_run_and_tab_is_stored(self):
        registry = make_registry()
        store = InMemoryTabStore()
        pipeline = make_pipeline(registry, store=store)

        result = await pipeline.process(TabItem(url='https://example.com/a', title='Example'), context())

        assert result.screenshots.thumbnail_url.startswith('dry-run://screenshots/')
        assert result.content.content == 'Content of https://example.com/a'
        assert result.summary.tags == ['dry-run']
        assert len(result.embedding) == 8
        assert result.skipped_stages == []
        assert result.tab_id.startswith('tab_')

        saved = store.tabs[('user_1', 'https://example.com/a')]
        assert saved['id'] == result.tab_id
        assert saved['import_job_id'] == 'job_test'
        assert saved['title'] == 'Example'

        for stage in STAGES:
            assert registry.get(stage).get_status()['admitted_count'] == 1

    @pytest.mark.asyncio
    async def test_dict_items_are_validated(self):
        result = await make_pipeline().process({'url': 'https://example.com/b'}, context())
        assert result.item.url == 'https://example.com/b'

        with pytest.raises(ValidationError):
            await make_pipeline().process({'url': 'ftp://example.com'}, context())

    @pytest.mark.asyncio
    async def test_without_extractor_summarizes_title(self):
        summarizer = Mock()
        summarizer.summarize = AsyncMock(return_value=SummaryResult(summary='A page'))
        pipeline = make_pipeline(summarizer=summarizer, extractor=None)

        result = await pipeline.process(TabItem(url='https://example.com/c', title='Title'), context())

        summarizer.summarize.assert_awaited_once_with('https://example.com/c', 'Title')
        assert result.content is None

    @pytest.mark.asyncio
    async def test_required_stage_failure_fails_item(self):
        summarizer = Mock()
        summarizer.summarize = AsyncMock(side_effect=RuntimeError('model overloaded'))
        store = InMemoryTabStore()
        pipeline = make_pipeline(summarizer=summarizer, store=store)

        with pytest.raises(DownstreamError) as exc_info:
            await pipeline.process(TabItem(url='https://example.com/d'), context())

        assert exc_info.value.service_name == 'summarization'
        assert store.tabs == {}

    @pytest.mark.asyncio
    async def test_optional_stage_failure_is_skipped(self):
        screenshotter = Mock()
        screenshotter.capture = AsyncMock(side_effect=DownstreamError('screenshot service down'))
        store = InMemoryTabStore()
        pipeline = TabPipeline(
            make_registry(),
            screenshotter=screenshotter,
            summarizer=DryRunSummarizer(),
            embedder=DryRunEmbedder(),
            store=store,
            optional_stages=['screenshots']
        )

        result = await pipeline.process(TabItem(url='https://example.com/e'), context())

        assert result.skipped_stages == ['screenshots']
        assert result.screenshots is None
        assert store.tabs[('user_1', 'https://example.com/e')]['screenshot_url'] is None

    def test_unknown_optional_stage(self):
        with pytest.raises(ValueError):
            make_pipeline(optional_stages=['thumbnails'])

    @pytest.mark.asyncio
    async def test_retryable_failures_are_retried(self):
        registry = make_registry()
        embedder = Mock()
        embedder.embed = AsyncMock(side_effect=[
            DownstreamError('rate limited', retryable=True),
            [0.1, 0.2]
        ])
        pipeline = make_pipeline(
            registry,
            embedder=embedder,
            retry_policy=RetryPolicy(max_attempts=3, base_delay=0.001, jitter=0.0)
        )

        result = await pipeline.process(TabItem(url='https://example.com/f'), context())

        assert result.embedding == [0.1, 0.2]
        assert embedder.embed.await_count == 2
        # Each attempt passes through the limiter
        assert registry.get('embeddings').get_status()['admitted_count'] == 2

    @pytest.mark.asyncio
    async def test_step_timeout(self):
        class SlowSummarizer:
            async def summarize(self, url, content):
                await asyncio.sleep(1.0)

        pipeline = make_pipeline(summarizer=SlowSummarizer(), step_timeout=0.05)

        with pytest.raises(DownstreamError) as exc_info:
            await pipeline.process(TabItem(url='https://example.com/g'), context())

        assert exc_info.value.service_name == 'summarization'
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_persistence_failure(self):
        store = Mock()
        store.save = AsyncMock(side_effect=RuntimeError('database is locked'))
        pipeline = make_pipeline(store=store)

        with pytest.raises(DownstreamError) as exc_info:
            await pipeline.process(TabItem(url='https://example.com/h'), context())

        assert exc_info.value.service_name == 'persistence'
        assert 'database is locked' in str(exc_info.value)

    def test_from_config(self):
        config = TabQueueConfig(overrides={
            'pipeline': {
                'step_timeout_seconds': 5,
                'optional_stages': ['content_extraction'],
                'retry': {'max_attempts': 4}
            }
        })
        pipeline = TabPipeline.from_config(
            config,
            RateLimiterRegistry.from_config(config),
            screenshotter=DryRunScreenshotProvider(),
            summarizer=DryRunSummarizer(),
            embedder=DryRunEmbedder(),
            store=InMemoryTabStore()
        )

        assert pipeline.step_timeout == 5.0
        assert pipeline.optional_stages == frozenset({'content_extraction'})
        assert pipeline.retry_policy.max_attempts == 4
