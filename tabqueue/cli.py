"""
TabQueue CLI commands

This module provides command-line interface for tabqueue operations.
"""

import asyncio
import json
import logging
from pathlib import Path

import click
import yaml

from tabqueue.config.tabqueue_config import TabQueueConfig, configure_logging
from tabqueue.exceptions import InvalidInput
from tabqueue.pipeline.dry_run import (
    DryRunContentExtractor,
    DryRunEmbedder,
    DryRunScreenshotProvider,
    DryRunSummarizer,
    InMemoryTabStore
)
from tabqueue.tabqueue import TabQueue

logger = logging.getLogger(__name__)


def _load_config(config_path):
    try:
        return TabQueueConfig.from_file(config_path) if config_path else TabQueueConfig()
    except RuntimeError as e:
        click.echo(f'Error: {e}', err=True)
        raise click.Abort()


def _load_tabs(path: Path):
    """Read tabs from a JSON or YAML file: a list, or a mapping with a 'tabs' list"""
    with open(path, 'r') as f:
        if path.suffix.lower() in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if isinstance(data, dict):
        data = data.get('tabs')
    if not isinstance(data, list):
        raise click.ClickException(f'No list of tabs found in {path}')

    return [{'url': entry} if isinstance(entry, str) else entry for entry in data]


@click.group()
def cli():
    """TabQueue command-line interface"""
    pass


@cli.group()
def config():
    """Inspect configuration"""
    pass


@config.command('show')
@click.option('--config', 'config_path', type=click.Path(exists=True), help='Path to configuration file')
def config_show(config_path):
    """Print the effective configuration as YAML"""
    cfg = _load_config(config_path)
    click.echo(yaml.safe_dump(cfg.get_all(), sort_keys=False))


@cli.command()
@click.option('--config', 'config_path', type=click.Path(exists=True), help='Path to configuration file')
def limits(config_path):
    """List the configured downstream rate limits"""
    cfg = _load_config(config_path)
    click.echo(f"{'SERVICE':<20} {'REQUESTS':>8} {'WINDOW':>8} {'CONCURRENT':>10}")
    for name, limit in cfg.get_rate_limits().items():
        click.echo(
            f"{name:<20} {limit['requests_per_window']:>8} "
            f"{str(limit['window_seconds']) + 's':>8} {limit['max_concurrent']:>10}"
        )


@cli.command()
@click.argument('tabs_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--owner', required=True, help='Owner (user) ID for the import')
@click.option('--config', 'config_path', type=click.Path(exists=True), help='Path to configuration file')
@click.option('--fail-rate', type=click.FloatRange(0.0, 1.0), default=0.0, show_default=True,
              help='Fraction of simulated summarization calls that fail')
@click.option('--latency', type=float, default=0.0, show_default=True,
              help='Simulated seconds per provider call')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              help='Logging level')
def run(tabs_file, owner, config_path, fail_rate, latency, log_level):
    """
    Import TABS_FILE through the queue using dry-run providers.

    \b
    Examples:
        tabqueue run tabs.json --owner user_123
        tabqueue run tabs.yaml --owner user_123 --fail-rate 0.2 --latency 0.05
    """
    cfg = _load_config(config_path)
    configure_logging(cfg, level=log_level)
    tabs = _load_tabs(tabs_file)

    async def _run():
        store = InMemoryTabStore()
        async with TabQueue(
            screenshotter=DryRunScreenshotProvider(latency=latency),
            summarizer=DryRunSummarizer(latency=latency, fail_rate=fail_rate),
            embedder=DryRunEmbedder(latency=latency),
            store=store,
            extractor=DryRunContentExtractor(latency=latency),
            config=cfg
        ) as tq:
            job_id = tq.submit(owner, tabs)
            click.echo(f'Queued job {job_id} with {len(tabs)} tabs')
            return await tq.manager.wait_for(job_id)

    try:
        final = asyncio.run(_run())
    except InvalidInput as e:
        raise click.ClickException(str(e))

    click.echo(json.dumps(final, indent=2))
    if final['phase'] != 'completed':
        raise SystemExit(1)


if __name__ == '__main__':
    cli()
