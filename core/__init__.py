"""
Core utilities and configuration for the Zabbix -> InfluxDB sync daemon.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Engine and session factories for the source and checkpoint stores
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    retry: Bounded retry loop with pluggable backoff strategies

Usage:
    from core.config import settings, load_settings
    from core.exceptions import DeliveryError, QueryExecutionError
    from core.logging import setup_logging
    from core.retry import retry_async, exponential_backoff

Example:
    # Initialize logging
    setup_logging()

    # Retry a flaky coroutine three times with exponential backoff
    await retry_async(send, max_attempts=3, backoff=exponential_backoff(1.0))
"""

from core.config import settings, load_settings
from core.logging import setup_logging
from core.retry import retry_async
from core.exceptions import (
    SyncException,
    ExtractionError,
    SourceConnectionError,
    QueryExecutionError,
    TransformationError,
    MappingError,
    UnknownTableVariantError,
    LoadError,
    DestinationConnectionError,
    DeliveryError,
    DeliveryRejectedError,
    RetryExhaustedError,
    CheckpointError,
    RetryableError,
    NonRetryableError,
)

__all__ = [
    "settings",
    "load_settings",
    "setup_logging",
    "retry_async",
    # Exceptions
    "SyncException",
    "ExtractionError",
    "SourceConnectionError",
    "QueryExecutionError",
    "TransformationError",
    "MappingError",
    "UnknownTableVariantError",
    "LoadError",
    "DestinationConnectionError",
    "DeliveryError",
    "DeliveryRejectedError",
    "RetryExhaustedError",
    "CheckpointError",
    "RetryableError",
    "NonRetryableError",
]
