"""
Base connector class for all vendor APIs
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from datetime import datetime
from adpilot.utils.logger import log
from adpilot.utils.retry import RetryContext


class ConnectorError(Exception):
    """A vendor API rejected the request or returned something unusable."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message
        self.status_code = status_code


class BaseConnector(ABC):
    """Shared retry, counters and status reporting for vendor connectors"""

    # Retry configuration (can be overridden by subclasses)
    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 2.0  # seconds
    RETRY_MAX_DELAY = 60.0  # seconds

    def __init__(self, name: str):
        self.name = name
        self.last_call = None
        self.call_count = 0
        self.error_count = 0
        self.retry_count = 0

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Credentials for this vendor are present"""

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Make a cheap authenticated call to prove the credentials work"""

    async def _retry_operation(self, operation, operation_name: str = "operation") -> Any:
        """
        Run an operation, retrying transient failures with backoff.

        Args:
            operation: Callable returning a value or a coroutine
            operation_name: Name for logging

        Returns:
            Result of the operation
        """
        self.call_count += 1
        self.last_call = datetime.utcnow()

        context = RetryContext(
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            base_delay=self.RETRY_BASE_DELAY,
            max_delay=self.RETRY_MAX_DELAY,
        )
        try:
            async with context:
                return await context.execute(operation)
        except Exception as e:
            self.error_count += 1
            log.error(f"{self.name} {operation_name} failed after {context.stats.attempts} attempt(s): {e}")
            raise
        finally:
            self.retry_count += max(context.stats.attempts - 1, 0)

    def get_status(self) -> Dict[str, Any]:
        """Get connector status"""
        return {
            "name": self.name,
            "configured": self.is_configured,
            "last_call": self.last_call.isoformat() if self.last_call else None,
            "call_count": self.call_count,
            "error_count": self.error_count,
            "retry_count": self.retry_count,
            "error_rate": self.error_count / max(self.call_count, 1),
        }
