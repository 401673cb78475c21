"""Tests for the retry executor."""

from unittest.mock import AsyncMock

import pytest
from botocore.exceptions import ClientError

from src.awsag.exceptions import PlatformError, ResourceInUseError, ResourceNotFoundError
from src.awsag.utils.retry import RetryConfig, RetryExecutor


def client_error(code: str, message: str = "error") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "TestOperation")


class TestRetryConfig:
    """Test cases for RetryConfig."""

    def test_defaults(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 30.0
        assert config.exponential_backoff is True

    def test_zero_base_delay_allowed(self):
        config = RetryConfig(base_delay=0, max_delay=0)
        assert config.base_delay == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"base_delay": -1},
            {"base_delay": 5, "max_delay": 1},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)


class TestRetryExecutor:
    """Test cases for RetryExecutor."""

    def setup_method(self):
        self.sleep = AsyncMock()
        self.executor = RetryExecutor(RetryConfig(max_attempts=3, base_delay=1.0), sleep=self.sleep)

    def test_calculate_delay_exponential(self):
        assert self.executor.calculate_delay(1) == 1.0
        assert self.executor.calculate_delay(2) == 2.0
        assert self.executor.calculate_delay(3) == 4.0

    def test_calculate_delay_capped_at_max(self):
        executor = RetryExecutor(RetryConfig(base_delay=10.0, max_delay=15.0))
        assert executor.calculate_delay(3) == 15.0

    def test_calculate_delay_fixed(self):
        executor = RetryExecutor(RetryConfig(base_delay=2.0, exponential_backoff=False))
        assert executor.calculate_delay(1) == 2.0
        assert executor.calculate_delay(4) == 2.0

    def test_should_retry_classification(self):
        assert self.executor.should_retry(ConnectionError("reset by peer"))
        assert self.executor.should_retry(client_error("ThrottlingException"))
        assert not self.executor.should_retry(client_error("AccessDeniedException"))
        assert not self.executor.should_retry(client_error("ResourceNotFoundException"))
        assert not self.executor.should_retry(ResourceNotFoundError("gone"))
        assert not self.executor.should_retry(ResourceInUseError("busy"))
        assert not self.executor.should_retry(PlatformError("failed"))
        assert self.executor.should_retry(PlatformError("throttled", retryable=True))

    @pytest.mark.asyncio
    async def test_execute_returns_first_success(self):
        action = AsyncMock(return_value="done")

        result = await self.executor.execute(action, "test action")

        assert result == "done"
        assert action.await_count == 1
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_execute_retries_transient_errors(self):
        action = AsyncMock(side_effect=[ConnectionError("timeout"), client_error("Throttling"), "ok"])

        result = await self.executor.execute(action, "test action")

        assert result == "ok"
        assert action.await_count == 3
        assert [call.args[0] for call in self.sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_execute_raises_last_error_when_attempts_exhausted(self):
        action = AsyncMock(side_effect=ConnectionError("still down"))

        with pytest.raises(ConnectionError, match="still down"):
            await self.executor.execute(action, "test action")

        assert action.await_count == 3

    @pytest.mark.asyncio
    async def test_execute_does_not_retry_permanent_errors(self):
        action = AsyncMock(side_effect=client_error("ValidationException", "bad input"))

        with pytest.raises(ClientError):
            await self.executor.execute(action, "test action")

        assert action.await_count == 1
        self.sleep.assert_not_awaited()
