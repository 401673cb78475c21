"""Retry executor for remote calls.

Every remote call made by the orchestrator goes through ``RetryExecutor.execute``.
Wrapped actions may run more than once, so callers must only wrap actions that
are safe to repeat (idempotent, or whose repetition is caught by conflict
detection).
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from botocore.exceptions import ClientError

from ..exceptions import AccessGrantError, is_resource_absent, is_resource_in_use

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that will fail the same way no matter how often they are retried
PERMANENT_ERROR_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
    "ValidationException",
    "InvalidParameterException",
    "ResourceNotFoundException",
    "ConflictException",
    "ServiceQuotaExceededException",
}


@dataclass
class RetryConfig:
    """Configuration for retry behaviour."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_backoff: bool = True
    jitter: bool = False

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")


class RetryExecutor:
    """Runs an async action with bounded retries and backoff."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the retry executor.

        Args:
            config: Retry configuration
            sleep: Coroutine used to wait between attempts
        """
        self.config = config or RetryConfig()
        self._sleep = sleep

    def should_retry(self, error: Exception) -> bool:
        """Determine if an error should trigger another attempt.

        Args:
            error: Exception raised by the action

        Returns:
            False for errors known to be permanent, True otherwise
        """
        if is_resource_absent(error) or is_resource_in_use(error):
            return False
        if isinstance(error, AccessGrantError):
            return error.retryable
        if isinstance(error, ClientError):
            error_code = error.response.get("Error", {}).get("Code", "")
            return error_code not in PERMANENT_ERROR_CODES
        return True

    def calculate_delay(self, attempt: int) -> float:
        """Calculate the delay after a failed attempt.

        Args:
            attempt: Number of the attempt that failed (1-based)

        Returns:
            Delay in seconds
        """
        if self.config.exponential_backoff:
            delay = min(self.config.max_delay, self.config.base_delay * (2 ** (attempt - 1)))
        else:
            delay = self.config.base_delay

        if self.config.jitter and delay > 0:
            delay = min(self.config.max_delay, delay + random.uniform(0, delay * 0.1))

        return delay

    async def execute(self, action: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        """Execute an action with retry logic.

        Args:
            action: Zero-argument callable returning an awaitable
            label: Name of the action used in log messages

        Returns:
            Result of the action

        Raises:
            Exception: The last error once attempts are exhausted
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await action()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt >= self.config.max_attempts or not self.should_retry(e):
                    if attempt > 1:
                        logger.warning(f"{label} failed after {attempt} attempts: {e}")
                    raise

                delay = self.calculate_delay(attempt)
                logger.debug(
                    f"{label} failed (attempt {attempt}/{self.config.max_attempts}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await self._sleep(delay)
