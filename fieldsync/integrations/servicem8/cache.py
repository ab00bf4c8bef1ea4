"""
Response cache for the ServiceM8 client.

The client depends only on the ``ResponseCache`` protocol so a shared backend
can be swapped in without touching request logic.
"""

import time
from collections.abc import Callable
from typing import Any, Protocol

from cachetools import TTLCache


class ResponseCache(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def clear(self) -> None: ...

    def keys(self) -> list[str]: ...


class InMemoryResponseCache:
    """Process-local TTL cache bounded to ``maxsize`` entries."""

    def __init__(
        self,
        ttl: float,
        maxsize: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)

    def get(self, key: str) -> Any | None:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        self._entries.expire()
        return list(self._entries.keys())
