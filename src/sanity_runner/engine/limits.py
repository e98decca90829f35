# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Wall-clock limit for the lane phase of a run.

The readiness gate has its own per-service retry budget, so only the
lanes fall under this limit.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sanity_runner.exceptions import TimeoutError as RunnerTimeoutError


@dataclass
class LimitEnforcer:
    """Bounds how long the lanes of one run may take.

    Example:
        >>> enforcer = LimitEnforcer(timeout_seconds=5400)
        >>> async with enforcer.timeout_context():
        ...     await run_lanes()
    """

    timeout_seconds: int | None = None
    """Lane-phase limit in seconds. None means unlimited."""

    start_time: float | None = None
    """Monotonic timestamp at which the clock started."""

    def start(self) -> None:
        self.start_time = time.monotonic()

    def get_elapsed_time(self) -> float:
        """Seconds since ``start``, or 0.0 before it."""
        if self.start_time is None:
            return 0.0
        return time.monotonic() - self.start_time

    def get_remaining_timeout(self) -> float | None:
        """Seconds left before the limit, None when unlimited."""
        if self.timeout_seconds is None:
            return None
        return max(0.0, self.timeout_seconds - self.get_elapsed_time())

    @asynccontextmanager
    async def timeout_context(self) -> AsyncIterator[None]:
        """Cancel the enclosed work once the limit is reached.

        Raises:
            TimeoutError: The harness TimeoutError, in place of asyncio's.
        """
        if self.start_time is None:
            self.start()

        if self.timeout_seconds is None:
            yield
            return

        try:
            async with asyncio.timeout(self.get_remaining_timeout()):
                yield
        except TimeoutError:
            raise RunnerTimeoutError(
                f"Lanes exceeded timeout ({self.timeout_seconds}s)",
                elapsed_seconds=self.get_elapsed_time(),
                timeout_seconds=float(self.timeout_seconds),
            ) from None
