"""
End-to-end tests for the TabQueue facade with dry-run providers
"""

from unittest.mock import Mock

import pytest

from tabqueue import InvalidInput, TabQueue, TabQueueConfig
from tabqueue.db import Database, SqlTabStore
from tabqueue.exceptions import DownstreamError
from tabqueue.pipeline import (
    DryRunContentExtractor,
    DryRunEmbedder,
    DryRunScreenshotProvider,
    DryRunSummarizer,
    InMemoryTabStore
)


class FlakySummarizer(DryRunSummarizer):
    """Fails for URLs containing 'broken'"""

    async def summarize(self, url, content):
        if 'broken' in url:
            raise DownstreamError(f"Cannot summarize {url}")
        return await super().summarize(url, content)


def make_queue(store=None, summarizer=None, **overrides):
    config = TabQueueConfig(overrides=overrides or None)
    return TabQueue(
        screenshotter=DryRunScreenshotProvider(),
        summarizer=summarizer or DryRunSummarizer(),
        embedder=DryRunEmbedder(),
        store=store if store is not None else InMemoryTabStore(),
        extractor=DryRunContentExtractor(),
        config=config
    )


def tabs(count, broken=()):
    return [
        {'url': f"https://example.com/{'broken' if i in broken else 'page'}/{i}"}
        for i in range(count)
    ]


class TestTabQueue:
    """Tests for importing tabs end to end"""

    @pytest.mark.asyncio
    async def test_partial_failures(self):
        store = InMemoryTabStore()
        async with make_queue(store, summarizer=FlakySummarizer()) as tq:
            job_id = tq.submit('user_1', tabs(10, broken={0, 4, 9}))
            final = await tq.manager.wait_for(job_id, timeout=10)

        assert final['phase'] == 'completed'
        assert final['processed_count'] == 7
        assert final['failed_count'] == 3
        assert [e['item_index'] for e in final['errors']] == [0, 4, 9]
        assert len(store.tabs) == 7

    @pytest.mark.asyncio
    async def test_rate_limit_pacing_is_reported(self):
        async with make_queue() as tq:
            job_id = tq.submit('user_1', tabs(3))
            await tq.manager.wait_for(job_id, timeout=10)

            status = tq.manager.get_queue_status()['rate_limit_status']
            assert status['screenshots']['requests_in_current_window'] == 3
            assert status['embeddings']['admitted_count'] == 3

    @pytest.mark.asyncio
    async def test_window_limit_spans_jobs(self):
        # One screenshot per window across all jobs
        overrides = {
            'queue': {'max_concurrent_jobs': 2, 'shutdown_timeout_seconds': 0.1},
            'rate_limits': {'screenshots': {'requests_per_window': 1, 'window_seconds': 60}}
        }
        async with make_queue(**overrides) as tq:
            first = tq.submit('user_1', tabs(1))
            second = tq.submit('user_2', tabs(1))
            await tq.manager.wait_for(first, timeout=5)

            limiter = tq.registry.get('screenshots')
            assert limiter.get_status()['queue_depth'] == 1
            assert tq.manager.get_job_status(second)['phase'] == 'processing'

        assert tq.manager.get_job_status(second)['phase'] == 'cancelled'

    @pytest.mark.asyncio
    async def test_invalid_tabs_rejected(self):
        async with make_queue() as tq:
            with pytest.raises(InvalidInput):
                tq.submit('user_1', [{'url': 'javascript:alert(1)'}])
            with pytest.raises(InvalidInput):
                tq.submit('user_1', [])

    @pytest.mark.asyncio
    async def test_progress_callback(self):
        callback = Mock()
        async with make_queue() as tq:
            job_id = tq.submit('user_1', tabs(2), on_progress=callback)
            await tq.manager.wait_for(job_id, timeout=10)

        assert callback.call_args_list[-1].args[0]['phase'] == 'completed'

    @pytest.mark.asyncio
    async def test_service_round_trip(self):
        async with make_queue() as tq:
            status, payload = await tq.service.submit({
                'ownerId': 'user_1',
                'items': [{'url': 'https://example.com/a'}]
            })
            assert status == 202

            await tq.manager.wait_for(payload['jobId'], timeout=10)
            status, payload = await tq.service.status(job_id=payload['jobId'])

        assert status == 200
        assert payload['job']['phase'] == 'completed'

    @pytest.mark.asyncio
    async def test_sql_store(self):
        db = Database(url='sqlite://')
        db.initialize()
        store = SqlTabStore(db)

        async with make_queue(store) as tq:
            first = tq.submit('user_1', tabs(2))
            await tq.manager.wait_for(first, timeout=10)
            # Re-importing the same tabs updates the existing rows
            second = tq.submit('user_1', tabs(2))
            await tq.manager.wait_for(second, timeout=10)

        assert store.count(owner_id='user_1') == 2
        assert len(store.list_for_job(second)) == 2
        db.close()
