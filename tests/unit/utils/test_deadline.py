"""Tests for the workflow deadline."""

import asyncio

import pytest

from src.awsag.exceptions import PollingTimeoutError
from src.awsag.utils.deadline import Deadline


class TestDeadline:
    """Test cases for Deadline."""

    def test_unbounded_deadline_never_expires(self):
        deadline = Deadline()
        assert deadline.remaining() is None
        assert not deadline.expired
        deadline.check("VALIDATION")

    def test_zero_deadline_is_expired(self):
        deadline = Deadline(0)
        assert deadline.expired
        with pytest.raises(PollingTimeoutError) as exc_info:
            deadline.check("PROVISIONING")
        assert exc_info.value.code == "PROVISIONING_TIMEOUT"
        assert exc_info.value.phase == "PROVISIONING"

    def test_remaining_is_bounded_by_seconds(self):
        deadline = Deadline(60)
        remaining = deadline.remaining()
        assert 0 < remaining <= 60

    @pytest.mark.asyncio
    async def test_run_returns_result_within_budget(self):
        async def work():
            return "value"

        assert await Deadline(5).run(work(), "VALIDATION") == "value"
        assert await Deadline().run(work(), "VALIDATION") == "value"

    @pytest.mark.asyncio
    async def test_run_cancels_work_past_deadline(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(PollingTimeoutError) as exc_info:
            await Deadline(0.01).run(slow(), "AWS_SYNC_VERIFICATION")

        assert exc_info.value.code == "AWS_SYNC_VERIFICATION_TIMEOUT"
        assert cancelled.is_set()
