"""Scheduler Module."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from tzlocal import get_localzone

from anisync import log
from anisync.core.engine import SyncEngine

__all__ = ["SchedulerClient"]

SWEEP_INTERVAL = 60


class SchedulerClient:
    """Periodic driver of the sync engine.

    Runs three independent loops until shutdown is requested: a scheduled sync
    batch every `sync_interval` seconds, a mapping dataset refresh every
    `mappings_refresh_interval` seconds and a progress session sweep (plus sync
    history cleanup) every minute. An interval of 0 disables its loop.
    """

    def __init__(self, engine: SyncEngine) -> None:
        """Initialize the scheduler.

        Args:
            engine (SyncEngine): Engine whose runs are scheduled
        """
        self.engine = engine
        self.config = engine.config
        self.stop_event = asyncio.Event()
        self._running = False
        self._tasks: set[asyncio.Task] = set()  # Prevents early GC

    def request_shutdown(self) -> None:
        """Request application shutdown from external callers."""
        if not self.stop_event.is_set():
            self.stop_event.set()

    @property
    def is_running(self) -> bool:
        """Return whether the scheduler loops are currently running."""
        return self._running

    async def initialize(self) -> None:
        """Import the mapping dataset unless a previous import succeeded."""
        log.info("Initializing anime mapping database")
        status = self.engine.importer.get_status()
        if status is not None and status.last_updated is not None:
            log.success("Anime mapping database ready")
            return
        try:
            stats = await self.engine.importer.run()
        except Exception:
            log.error("Initial mapping import failed", exc_info=True)
            return
        log.success(f"Anime mapping database ready with {stats.complete} mappings")

    async def start(self) -> None:
        """Start the scheduler loops."""
        if self._running:
            return
        self._running = True

        log.info(
            f"Starting application scheduler: "
            f"sync_interval={self.config.sync_interval}s, "
            f"mappings_refresh_interval={self.config.mappings_refresh_interval}s, "
            f"users={len(self.config.users)}"
        )
        self._start_loop("sync batch", self.config.sync_interval, self.sync_batch)
        self._start_loop(
            "mapping refresh",
            self.config.mappings_refresh_interval,
            self.refresh_mappings,
            run_first=False,
        )
        self._start_loop(
            "session sweep", SWEEP_INTERVAL, self.housekeep, run_first=False
        )

    def _start_loop(
        self,
        name: str,
        interval: int,
        job: Callable[[], Awaitable[Any]],
        *,
        run_first: bool = True,
    ) -> None:
        if interval <= 0:
            log.debug(f"Scheduled {name} is disabled")
            return
        log.debug(f"Starting scheduled {name} every {interval}s")
        task = asyncio.create_task(
            self._periodic_loop(name, interval, job, run_first=run_first)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _periodic_loop(
        self,
        name: str,
        interval: int,
        job: Callable[[], Awaitable[Any]],
        *,
        run_first: bool = True,
    ) -> None:
        """Run `job` every `interval` seconds until shutdown."""
        skip = not run_first
        while self._running and not self.stop_event.is_set():
            try:
                if not skip:
                    await job()
                skip = False

                next_run = datetime.now(UTC) + timedelta(seconds=interval)
                if interval > SWEEP_INTERVAL:
                    log.info(
                        f"Next {name} scheduled for: "
                        f"{next_run.astimezone(get_localzone())}"
                    )

                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self.stop_event.wait(), interval)
            except asyncio.CancelledError:
                log.debug(f"Scheduled {name} cancelled")
                break
            except Exception:
                log.error(f"Scheduled {name} error", exc_info=True)
                await asyncio.sleep(10)

    async def sync_batch(self) -> dict[str, Any]:
        return await self.engine.run_scheduled_sync()

    async def refresh_mappings(self) -> None:
        await self.engine.importer.run()

    async def housekeep(self) -> None:
        self.engine.sweep_sessions()
        self.engine.cleanup_history()

    async def stop(self) -> None:
        """Stop all loops and close the engine."""
        if not self._running:
            return
        self._running = False
        log.info("Stopping application scheduler")
        self.stop_event.set()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        await self.engine.close()
        log.info("Application scheduler stopped")

    async def wait_for_completion(self) -> None:
        """Wait for the application to be stopped."""
        if not self._running:
            return
        try:
            await self.stop_event.wait()
        except asyncio.CancelledError:
            log.info("Application scheduler wait interrupted")
            raise
