"""Overall deadline for a workflow instance."""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from ..exceptions import PollingTimeoutError

T = TypeVar("T")


class Deadline:
    """Wall-clock budget shared by every phase and polling loop of one workflow.

    A deadline created with ``seconds=None`` never expires.
    """

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds if seconds is not None else None

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, phase: str) -> None:
        """Raise if the deadline has passed."""
        if self.expired:
            raise PollingTimeoutError(
                f"Operation deadline of {self.seconds}s exceeded during {phase}", phase=phase
            )

    async def run(self, awaitable: Awaitable[T], phase: str) -> T:
        """Await ``awaitable``, cancelling it if the deadline passes first."""
        remaining = self.remaining()
        if remaining is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise PollingTimeoutError(
                f"Operation deadline of {self.seconds}s exceeded during {phase}", phase=phase
            ) from e
