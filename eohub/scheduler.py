"""
Background jobs - queue draining, credential expiry checks and cache cleanup.
"""

from datetime import timedelta
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

if TYPE_CHECKING:
    from eohub.auth.credentials import CredentialStore
    from eohub.integrator.router import DataIntegrator


class DataScheduler:
    """
    Periodic maintenance for a running hub.

    Usage:
        scheduler = DataScheduler(integrator, credentials)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        integrator: "DataIntegrator",
        credentials: "CredentialStore | None" = None,
        queue_tick_seconds: float = 1.0,
        auth_check_seconds: int = 60,
        cleanup_interval_minutes: int = 30,
        cleanup_max_age: timedelta = timedelta(hours=24),
    ):
        self.scheduler = AsyncIOScheduler()
        self._is_running = False
        self._integrator = integrator
        self._credentials = credentials
        self._queue_tick_seconds = queue_tick_seconds
        self._auth_check_seconds = auth_check_seconds
        self._cleanup_interval_minutes = cleanup_interval_minutes
        self._cleanup_max_age = cleanup_max_age

    # ── Job handlers ──────────────────────────────────────────────────────────

    async def _queue_job(self) -> None:
        try:
            await self._integrator.tick()
        except Exception as e:
            logger.error(f"Queue tick failed: {e}")

    async def _auth_job(self) -> None:
        if not self._credentials:
            return
        try:
            await self._credentials.check_expiry()
        except Exception as e:
            logger.error(f"Credential expiry check failed: {e}")

    async def _cleanup_job(self) -> None:
        try:
            removed = await self._integrator.cache.cleanup(self._cleanup_max_age)
            if removed:
                logger.info(f"Cache cleanup removed {removed} entries")
        except Exception as e:
            logger.error(f"Cache cleanup failed: {e}")

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start all maintenance jobs."""
        if self._is_running:
            logger.warning("DataScheduler is already running")
            return

        self.scheduler.add_job(
            self._queue_job,
            trigger="interval",
            seconds=self._queue_tick_seconds,
            id="queue_tick",
            name="Request Queue Tick",
            replace_existing=True,
        )
        logger.info(f"Queue job: every {self._queue_tick_seconds}s")

        if self._credentials:
            self.scheduler.add_job(
                self._auth_job,
                trigger="interval",
                seconds=self._auth_check_seconds,
                id="auth_check",
                name="Credential Expiry Check",
                replace_existing=True,
            )
            logger.info(f"Auth job: every {self._auth_check_seconds}s")

        self.scheduler.add_job(
            self._cleanup_job,
            trigger="interval",
            minutes=self._cleanup_interval_minutes,
            id="cache_cleanup",
            name="Cache Cleanup",
            replace_existing=True,
        )
        logger.info(f"Cache cleanup job: every {self._cleanup_interval_minutes} min")

        self.scheduler.start()
        self._is_running = True
        logger.info("DataScheduler started")

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._is_running:
            return
        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("DataScheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def run_now(self) -> None:
        """Run every maintenance job once, then drain the queue."""
        await self._auth_job()
        await self._cleanup_job()
        drained = await self._integrator.queue.drain()
        if drained:
            logger.info(f"Drained {drained} queued requests")

    def get_status(self) -> dict[str, Any]:
        jobs = []
        if self._is_running:
            for job in self.scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                    }
                )
        return {"running": self._is_running, "jobs": jobs}
