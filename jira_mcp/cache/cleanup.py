# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Periodic sweep of expired TTLCache entries.

The worker is owned by whoever owns the cache: started and stopped
explicitly, never on import.
"""

import asyncio

import structlog

from .ttl_cache import TTLCache

logger = structlog.get_logger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 600.0


class CacheSweepWorker:
    """Background asyncio task evicting expired cache entries."""

    def __init__(
        self,
        cache: TTLCache,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._cache = cache
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("cache_sweep_started", interval=self._interval)

    async def stop(self) -> None:
        """Stop the sweep loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("cache_sweep_stopped")

    async def _loop(self) -> None:
        """Sweep on interval."""
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self._run_once()
            except Exception as e:
                logger.error("cache_sweep_error", error=str(e))

    def _run_once(self) -> int:
        """Execute one sweep cycle."""
        evicted = self._cache.sweep()
        if evicted > 0:
            logger.info("cache_sweep_cycle", evicted=evicted, remaining=len(self._cache))
        return evicted
