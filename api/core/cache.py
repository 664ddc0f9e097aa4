"""
In-process key -> value cache with per-entry expiry.

A typed, lock-guarded wrapper over `cachetools.TTLCache`. Entries expire
`ttl_s` seconds after their last write and are invisible to `get()` from
then on. A background sweep task reclaims expired entries every
`sweep_interval_s` seconds.

The cache is created and torn down by the application lifespan
(see `api/main.py`) and handed to the resolver explicitly.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Generic, TypeVar

import cachetools

DEFAULT_TTL_S = 5 * 60
DEFAULT_SWEEP_INTERVAL_S = 10 * 60
DEFAULT_MAXSIZE = 10_000

V = TypeVar("V")

_MISSING = object()

logger = logging.getLogger(__name__)


class TTLCache(Generic[V]):
    def __init__(
        self,
        *,
        ttl_s: float = DEFAULT_TTL_S,
        sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        maxsize: int = DEFAULT_MAXSIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_s <= 0:
            raise ValueError("ttl_s must be positive.")
        if sweep_interval_s <= 0:
            raise ValueError("sweep_interval_s must be positive.")
        self.ttl_s = float(ttl_s)
        self.sweep_interval_s = float(sweep_interval_s)
        # cachetools caches are not thread-safe on their own.
        self._lock = threading.Lock()
        self._data: cachetools.TTLCache = cachetools.TTLCache(maxsize=maxsize, ttl=self.ttl_s, timer=clock)
        self._sweeper: asyncio.Task[None] | None = None

    def get(self, key: str) -> tuple[V | None, bool]:
        """
        Return `(value, True)` for a live entry, `(None, False)` otherwise.

        A missing key and an expired key look the same to the caller.
        """
        with self._lock:
            value = self._data.get(key, _MISSING)
        if value is _MISSING:
            return None, False
        return value, True

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def delete_expired(self) -> None:
        with self._lock:
            self._data.expire()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_s)
            self.delete_expired()
            logger.debug("cache_sweep size=%s", len(self))

    def start(self) -> None:
        """
        Start the background sweep on the running event loop.
        """
        if self._sweeper is not None:
            return None
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        with self._lock:
            self._data.clear()
