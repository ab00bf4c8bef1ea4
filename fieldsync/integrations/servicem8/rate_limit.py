"""
Rate limit tracking for the ServiceM8 client.

ServiceM8 reports its quota through ``X-RateLimit-*`` response headers. The
limiter records the latest values and, once the quota is exhausted, makes the
next request wait until the reported reset time.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from typing import Protocol

from fieldsync.integrations.servicem8.constants import (
    RATE_LIMIT_LIMIT_HEADER,
    RATE_LIMIT_REMAINING_HEADER,
    RATE_LIMIT_RESET_HEADER,
)
from fieldsync.integrations.servicem8.schemas import RateLimitInfo
from fieldsync.utils.logger import logger


class RateLimiter(Protocol):
    def update_from_headers(self, headers: Mapping[str, str]) -> None: ...

    async def wait_if_exhausted(self) -> None: ...

    @property
    def info(self) -> RateLimitInfo | None: ...


class InMemoryRateLimiter:
    """Keeps the most recent quota snapshot for one client instance."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._info: RateLimitInfo | None = None

    @property
    def info(self) -> RateLimitInfo | None:
        return self._info

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Record quota headers; responses without the full set are ignored."""
        limit = headers.get(RATE_LIMIT_LIMIT_HEADER)
        remaining = headers.get(RATE_LIMIT_REMAINING_HEADER)
        reset = headers.get(RATE_LIMIT_RESET_HEADER)
        if limit is None or remaining is None or reset is None:
            return

        try:
            self._info = RateLimitInfo(
                limit=int(limit),
                remaining=int(remaining),
                reset=datetime.fromtimestamp(float(reset), tz=UTC),
            )
        except ValueError:
            logger.warning(
                "Ignoring malformed rate limit headers",
                limit=limit,
                remaining=remaining,
                reset=reset,
            )

    async def wait_if_exhausted(self) -> None:
        """Sleep until the reset time when no requests remain in the window."""
        if self._info is None or self._info.remaining > 0:
            return

        wait_seconds = self._info.reset.timestamp() - self._clock()
        if wait_seconds > 0:
            logger.warning("ServiceM8 rate limit exhausted, waiting", wait_seconds=wait_seconds)
            await self._sleep(wait_seconds)
