"""
Realtime fan-out of processed webhook events.

The processor only depends on ``RealtimeBroadcaster``; the in-memory
implementation serves subscribers within this process (e.g. websocket
connections).
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from fieldsync.utils.logger import logger

Subscriber = Callable[[str, dict[str, Any]], Awaitable[None]]


class RealtimeBroadcaster(Protocol):
    async def publish(self, channel: str, event: str, message: dict[str, Any]) -> None: ...


class InMemoryBroadcaster:
    """Channel-based pub/sub for subscribers in this process."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], Awaitable[None]]:
        """Register a callback for a channel; returns an unsubscribe coroutine function."""
        async with self._lock:
            self._subscribers.setdefault(channel, []).append(callback)

        async def unsubscribe() -> None:
            async with self._lock:
                callbacks = self._subscribers.get(channel, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(channel, None)

        return unsubscribe

    async def publish(self, channel: str, event: str, message: dict[str, Any]) -> None:
        async with self._lock:
            targets = list(self._subscribers.get(channel, []))

        for callback in targets:
            try:
                await callback(event, message)
            except Exception as e:
                # One broken subscriber must not starve the others
                logger.warning(
                    "[InMemoryBroadcaster] Subscriber failed", channel=channel, error=str(e)
                )

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))
