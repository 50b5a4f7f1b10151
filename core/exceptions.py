"""
Custom exceptions for the sync pipeline with structured error context.

This module provides the exception hierarchy used throughout the
Zabbix -> InfluxDB synchronization engine. Each exception includes context
information for debugging and monitoring, and every one of them is
recoverable at the cycle level: the orchestrator turns them into a failed
or skipped ``SyncResult`` instead of letting them stop the daemon.

Exception Hierarchy:
    SyncException (base)
    ├── ExtractionError
    │   ├── SourceConnectionError
    │   └── QueryExecutionError
    ├── TransformationError
    │   ├── MappingError
    │   └── UnknownTableVariantError
    ├── LoadError
    │   ├── DestinationConnectionError
    │   ├── DeliveryError
    │   ├── DeliveryRejectedError
    │   └── RetryExhaustedError
    ├── CheckpointError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, cursor, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(SyncException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Destination temporarily unavailable (HTTP 5xx, 429)
    """
    pass


class NonRetryableError(SyncException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Authentication failures (HTTP 401, 403)
    - Malformed payloads rejected by the destination (HTTP 400)
    - Configuration mistakes such as an unknown table variant
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(SyncException):
    """Base exception for source extraction failures."""
    pass


class SourceConnectionError(ExtractionError):
    """
    Raised when none of the configured Zabbix servers accepts a connection.

    Context should include:
        - servers: The servers that were tried
        - last_error: The last connection error message
    """
    pass


class QueryExecutionError(ExtractionError):
    """
    Raised when the history range query fails or exceeds its deadline.

    Context should include:
        - source_name: History table being queried
        - cursor: Lower bound used by the query
        - timeout: Query deadline in seconds (if applicable)
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(SyncException):
    """Base exception for row-to-metric transformation failures."""
    pass


class MappingError(TransformationError):
    """
    Raised when a raw history row cannot be turned into a metric record.

    Context should include:
        - source_name: History table the row came from
        - item_key: Zabbix item key of the row
        - clock: Row timestamp
    """
    pass


class UnknownTableVariantError(NonRetryableError, TransformationError):
    """Raised when a configured history table name has no known value decoding."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(SyncException):
    """Base exception for destination delivery failures."""
    pass


class DestinationConnectionError(LoadError):
    """Raised when the destination does not answer its health check."""
    pass


class DeliveryError(RetryableError, LoadError):
    """
    Transient batch delivery failure that should be retried.

    Context should include:
        - status_code: HTTP status code (if applicable)
        - batch_size: Number of records in the batch
        - response_body: Response body (truncated)
    """
    pass


class DeliveryRejectedError(NonRetryableError, LoadError):
    """Destination permanently rejected a batch (auth, malformed payload)."""
    pass


class RetryExhaustedError(LoadError):
    """
    Raised when an operation kept failing for every allowed attempt.

    Context should include:
        - attempts: Number of attempts made
        - operation: Description of the operation
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        attempts: int = 0
    ):
        super().__init__(message, context, original_exception)
        self.attempts = attempts
        self.context["attempts"] = attempts


# ============================================================================
# Checkpoint Errors
# ============================================================================

class CheckpointError(SyncException):
    """
    Raised when checkpoint management fails.

    Context should include:
        - source_name: Name of the history table
        - checkpoint_value: The checkpoint value that failed
        - operation: Operation that failed (read, write, rollback)
    """
    pass
