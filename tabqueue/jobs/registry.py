"""
Rate Limiter Registry

Catalog of named rate limiters shared by every job worker. Limiters are
created on first use and live until the registry is shut down.
"""

import logging
import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional

from tabqueue.jobs.rate_limiter import RateLimitConfig, RateLimiter

logger = logging.getLogger(__name__)


class RateLimiterRegistry:
    """
    Lookup-or-create catalog of RateLimiter instances.

    Construct one per process (or per test) and pass it to the QueueManager
    and the pipeline.

    Usage:
        registry = RateLimiterRegistry.from_config(TabQueueConfig())

        limiter = registry.get('embeddings')
        limiter = registry.get('ocr', RateLimitConfig('ocr', 10, 60.0, 1))
    """

    def __init__(self, configs: Optional[Dict[str, RateLimitConfig]] = None):
        self._configs: Dict[str, RateLimitConfig] = dict(configs or {})
        self._limiters: Dict[str, RateLimiter] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> 'RateLimiterRegistry':
        """Build a registry from the 'rate_limits' section of a TabQueueConfig"""
        configs = {
            name: RateLimitConfig.from_dict(name, limits)
            for name, limits in config.get_rate_limits().items()
        }
        return cls(configs)

    def configure(self, config: RateLimitConfig) -> None:
        """
        Register the default configuration for a service.

        Has no effect on a limiter that was already created.
        """
        with self._lock:
            self._configs[config.service_name] = config

    def get(
        self,
        service_name: str,
        default_config: Optional[RateLimitConfig] = None
    ) -> RateLimiter:
        """
        Get the limiter for a service, creating it on first use.

        Args:
            service_name: Downstream service name
            default_config: Configuration used only if the limiter does not exist
                yet; falls back to the configured limits for service_name

        Raises:
            KeyError: If the limiter does not exist and no configuration is known
        """
        limiter = self._limiters.get(service_name)
        if limiter is not None:
            return limiter

        with self._lock:
            limiter = self._limiters.get(service_name)
            if limiter is None:
                config = default_config or self._configs.get(service_name)
                if config is None:
                    raise KeyError(f"No rate limit configuration for service: {service_name}")
                if config.service_name != service_name:
                    config = replace(config, service_name=service_name)

                limiter = RateLimiter(config)
                self._limiters[service_name] = limiter
                logger.info(
                    f"Created rate limiter {service_name}: "
                    f"{config.requests_per_window} requests/{config.window_duration}s, "
                    f"max {config.max_concurrent} concurrent"
                )
        return limiter

    def __contains__(self, service_name: str) -> bool:
        return service_name in self._limiters

    def names(self) -> List[str]:
        with self._lock:
            return list(self._limiters.keys())

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        """Get status of every created limiter"""
        with self._lock:
            limiters = list(self._limiters.items())
        return {name: limiter.get_status() for name, limiter in limiters}

    async def shutdown(self) -> None:
        """Shut down every limiter, cancelling calls still waiting for admission"""
        with self._lock:
            limiters = list(self._limiters.values())

        for limiter in limiters:
            await limiter.shutdown()

        logger.info(f"Shut down {len(limiters)} rate limiters")
