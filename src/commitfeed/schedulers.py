"""Background refresh scheduling for the commit cache."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from commitfeed.errors import CommitFeedError

if TYPE_CHECKING:
    from commitfeed.cache import CommitCache
    from commitfeed.obfuscator import Obfuscator
    from commitfeed.protocols import CommitSourceProtocol

log = structlog.get_logger()


class RefreshState(StrEnum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshScheduler:
    """Keeps the commit cache warm.

    Runs one refresh at startup, then one every ``interval_seconds``.
    ``request_refresh`` lets the read path ask for an extra cycle without
    waiting on it; it is dropped while any cycle is running. A periodic tick
    may still start during an on-demand cycle: merging is an idempotent
    upsert, so that race only costs a redundant fetch.
    """

    def __init__(
        self,
        cache: CommitCache,
        source: CommitSourceProtocol,
        obfuscator: Obfuscator,
        *,
        interval_seconds: float,
    ) -> None:
        self._cache = cache
        self._source = source
        self._obfuscator = obfuscator
        self._interval_seconds = interval_seconds
        self._active_cycles = 0
        self._periodic_task: asyncio.Task[None] | None = None
        self._on_demand_task: asyncio.Task[bool] | None = None

    @property
    def state(self) -> RefreshState:
        return RefreshState.REFRESHING if self._active_cycles else RefreshState.IDLE

    async def refresh_once(self) -> bool:
        """Run one refresh cycle. Returns True if the cache was updated.

        Failures are logged and leave the cache untouched; the next cycle
        retries.
        """
        self._active_cycles += 1
        try:
            watermark = self._cache.last_refreshed
            if watermark is None or self._cache.is_empty():
                mode = "full"
                log.info("commit_cache_refresh_started", mode=mode)
                records = await self._source.fetch_all()
            else:
                mode = "incremental"
                log.info("commit_cache_refresh_started", mode=mode, since=watermark.isoformat())
                records = await self._source.fetch_since(watermark)

            total = self._cache.merge(self._obfuscator.obfuscate(records))
            log.info("commit_cache_refreshed", mode=mode, fetched=len(records), total=total)
            return True
        except CommitFeedError as exc:
            log.warning(
                "commit_cache_refresh_failed",
                code=exc.code,
                message=exc.message,
                recoverable=exc.recoverable,
            )
            return False
        except Exception:
            log.warning("commit_cache_refresh_failed", exc_info=True)
            return False
        finally:
            self._active_cycles -= 1

    async def start(self) -> None:
        """Warm the cache once, then start the periodic loop in the background.

        A failed warm-up is not fatal: the server starts with whatever the
        cache holds and the loop keeps retrying.
        """
        if not await self.refresh_once():
            log.warning("commit_cache_warmup_failed", cached=len(self._cache))
        self._periodic_task = asyncio.create_task(self.run_periodic())

    async def run_periodic(self) -> None:
        """Refresh every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(self._interval_seconds)
            await self.refresh_once()

    def request_refresh(self) -> bool:
        """Schedule an out-of-band refresh without waiting for it.

        Coalesced: while any refresh cycle is running, periodic or on-demand,
        the request is dropped and False is returned.
        """
        if self._active_cycles or (
            self._on_demand_task is not None and not self._on_demand_task.done()
        ):
            log.debug("commit_cache_refresh_coalesced")
            return False
        self._on_demand_task = asyncio.create_task(self.refresh_once())
        return True

    async def stop(self) -> None:
        """Cancel the periodic loop and any in-flight on-demand refresh."""
        tasks = [task for task in (self._periodic_task, self._on_demand_task) if task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._periodic_task = None
        self._on_demand_task = None
