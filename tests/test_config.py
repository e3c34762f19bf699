"""
Tests for TabQueueConfig and logging setup
"""

import logging

import pytest
import yaml

from tabqueue.config import TabQueueConfig, configure_logging
from tabqueue.jobs.queue import QueueConfig


class TestTabQueueConfig:
    """Tests for configuration loading"""

    def test_defaults(self):
        config = TabQueueConfig()

        assert config.get('queue.max_concurrent_jobs') == 2
        assert set(config.get_rate_limits()) == {
            'screenshots', 'content_extraction', 'summarization', 'embeddings'
        }
        assert config.get('rate_limits.embeddings.max_concurrent') == 8
        assert config.get('pipeline.retry.max_attempts') == 3
        assert config.get('missing.key', 'fallback') == 'fallback'

    def test_file_overlays_defaults(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump({
            'queue': {'max_concurrent_jobs': 4},
            'rate_limits': {'summarization': {'requests_per_window': 10}}
        }))

        config = TabQueueConfig.from_file(path)

        assert config.get('queue.max_concurrent_jobs') == 4
        assert config.get('queue.max_items_per_job') == 10000
        assert config.get('rate_limits.summarization.requests_per_window') == 10
        assert config.get('rate_limits.summarization.max_concurrent') == 4

    def test_overrides(self):
        config = TabQueueConfig(overrides={'queue': {'retention_seconds': 60}})

        queue_config = QueueConfig.from_config(config)
        assert queue_config.retention == 60.0
        assert queue_config.max_concurrent_jobs == 2

    def test_instances_are_independent(self):
        first = TabQueueConfig()
        second = TabQueueConfig()
        first.set('queue.max_concurrent_jobs', 9)

        assert second.get('queue.max_concurrent_jobs') == 2

    def test_set_creates_nested_keys(self):
        config = TabQueueConfig()
        config.set('rate_limits.ocr.max_concurrent', 1)
        assert config.get('rate_limits.ocr') == {'max_concurrent': 1}

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuntimeError, match='not found'):
            TabQueueConfig.from_file(tmp_path / 'missing.yaml')

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text('')
        with pytest.raises(RuntimeError, match='empty'):
            TabQueueConfig.from_file(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'broken.yaml'
        path.write_text('queue: [unclosed')
        with pytest.raises(RuntimeError, match='Invalid YAML'):
            TabQueueConfig.from_file(path)

    @pytest.mark.parametrize('overrides, message', [
        ({'queue': {'max_concurrent_jobs': 0}}, 'max_concurrent_jobs'),
        ({'rate_limits': {'embeddings': {'requests_per_window': 0}}}, 'must be positive'),
        ({'rate_limits': {'ocr': {'requests_per_window': 5}}}, 'missing'),
        ({'database': {'type': 'mysql'}}, 'Unsupported database type'),
    ])
    def test_invalid_values(self, overrides, message):
        with pytest.raises(RuntimeError, match=message):
            TabQueueConfig(overrides=overrides)

    def test_save_round_trip(self, tmp_path):
        config = TabQueueConfig(overrides={'queue': {'max_concurrent_jobs': 3}})
        path = config.save(tmp_path / 'saved' / 'config.yaml')

        assert TabQueueConfig.from_file(path).get('queue.max_concurrent_jobs') == 3


class TestConfigureLogging:
    """Tests for configure_logging"""

    def test_level_from_config(self):
        configure_logging(TabQueueConfig(overrides={'logging': {'level': 'WARNING'}}))
        assert logging.getLogger().level == logging.WARNING

    def test_explicit_level_wins(self):
        configure_logging(TabQueueConfig(), level='debug')
        assert logging.getLogger().level == logging.DEBUG

    def test_log_file(self, tmp_path):
        log_file = tmp_path / 'logs' / 'tabqueue.log'
        configure_logging(TabQueueConfig(overrides={'logging': {'file': str(log_file)}}))

        logging.getLogger('tabqueue.test').info('hello from the queue')
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert 'hello from the queue' in log_file.read_text()
