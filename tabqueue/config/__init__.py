from tabqueue.config.tabqueue_config import TabQueueConfig, configure_logging

__all__ = ['TabQueueConfig', 'configure_logging']
