"""
TabQueue Configuration Management

Loads the packaged defaults, then overlays ~/.tabqueue/config.yaml or an
explicit file. Values are read with dot notation, e.g. 'queue.max_concurrent_jobs'.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / 'default_config.yaml'
USER_CONFIG_PATH = Path.home() / '.tabqueue' / 'config.yaml'


class TabQueueConfig:
    """
    System-wide configuration for tabqueue.

    Instances are independent so tests and embedded uses can run side by side
    with different settings.
    """

    def __init__(
        self,
        overrides: Optional[Dict[str, Any]] = None,
        config_file: Optional[Union[str, Path]] = None
    ):
        with open(DEFAULT_CONFIG_PATH, 'r') as f:
            self.config: Dict[str, Any] = yaml.safe_load(f)

        self.config_file = Path(config_file) if config_file else USER_CONFIG_PATH
        if config_file is not None or self.config_file.exists():
            self._load_config()

        if overrides:
            self.update(overrides)

        self._validate_config()

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> 'TabQueueConfig':
        """
        Build a configuration from the packaged defaults plus one YAML file.

        Raises:
            RuntimeError: If the file is missing, empty or not a mapping
        """
        return cls(config_file=config_path)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a value by dotted path, e.g. 'rate_limits.embeddings.max_concurrent'"""
        try:
            value = self.config
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        keys = key.split('.')
        config = self.config
        for k in keys[:-1]:
            if k not in config or not isinstance(config[k], dict):
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def update(self, config: Dict[str, Any]) -> None:
        """Deep-merge configuration values"""
        self._update_config_recursive(self.config, config)

    def get_all(self) -> Dict[str, Any]:
        """Get a copy of the whole configuration"""
        return copy.deepcopy(self.config)

    def get_queue_config(self) -> Dict[str, Any]:
        return self.config.get('queue', {})

    def get_rate_limits(self) -> Dict[str, Dict[str, Any]]:
        return self.config.get('rate_limits', {}) or {}

    def get_pipeline_config(self) -> Dict[str, Any]:
        return self.config.get('pipeline', {})

    def get_database_config(self) -> Dict[str, Any]:
        return self.config.get('database', {})

    def get_logging_config(self) -> Dict[str, Any]:
        return self.config.get('logging', {})

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the configuration as YAML and return the path written"""
        target = Path(path) if path else self.config_file
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w') as f:
            yaml.safe_dump(self.config, f, sort_keys=False)
        logger.info(f"Configuration saved to {target}")
        return target

    def _load_config(self) -> None:
        if not self.config_file.exists():
            raise RuntimeError(f"Configuration file not found: {self.config_file}")
        try:
            with open(self.config_file, 'r') as f:
                file_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RuntimeError(f"Invalid YAML in configuration file: {e}") from e

        if file_config is None:
            raise RuntimeError(f"Configuration file is empty: {self.config_file}")
        if not isinstance(file_config, dict):
            raise RuntimeError("Configuration must be a dictionary")

        self._update_config_recursive(self.config, file_config)
        logger.info(f"Configuration loaded from {self.config_file}")

    def _validate_config(self) -> None:
        """Reject configurations the queue or the limiters could not run with"""
        for section in ('queue', 'rate_limits', 'pipeline', 'logging'):
            if section not in self.config:
                raise RuntimeError(f"Missing required configuration section: {section}")

        if int(self.get('queue.max_concurrent_jobs', 0)) < 1:
            raise RuntimeError("queue.max_concurrent_jobs must be at least 1")

        for name, limits in self.get_rate_limits().items():
            if not isinstance(limits, dict):
                raise RuntimeError(f"Rate limit for {name} must be a mapping")
            for field in ('requests_per_window', 'window_seconds', 'max_concurrent'):
                if field not in limits:
                    raise RuntimeError(f"Rate limit for {name} is missing {field}")
                if float(limits[field]) <= 0:
                    raise RuntimeError(f"Rate limit {name}.{field} must be positive")

        db_type = self.get('database.type', 'sqlite')
        if db_type not in ('sqlite', 'postgresql', 'postgres'):
            raise RuntimeError(f"Unsupported database type: {db_type}")

    def _update_config_recursive(self, base: Dict[str, Any], update: Dict[str, Any]) -> None:
        for key, value in update.items():
            if isinstance(value, dict) and key in base and isinstance(base[key], dict):
                self._update_config_recursive(base[key], value)
            else:
                base[key] = value


def configure_logging(config: Optional[TabQueueConfig] = None, level: Optional[str] = None) -> None:
    """
    Configure root logging from the 'logging' section.

    Args:
        config: Configuration to read; defaults are used when omitted
        level: Explicit level overriding the configured one
    """
    config = config or TabQueueConfig()
    logging_config = config.get_logging_config()

    log_level = (level or logging_config.get('level') or 'INFO').upper()
    log_format = logging_config.get('format') or '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    handlers = [logging.StreamHandler()]
    log_file = logging_config.get('file')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=log_format,
        handlers=handlers,
        force=True
    )
