"""SchedulerService: periodic housekeeping with APScheduler.

Runs one job, ``stale_session_sweep``: pipelines are queued in process memory,
so a restart or crash strands sessions in ``processing``. Every
``stale_sweep_interval_minutes`` the sweep fails sessions that have not been
updated for ``stale_session_minutes``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from session_insights.config import settings
from session_insights.exceptions import StorageError
from session_insights.services.session_store import SessionStore

logger = logging.getLogger(__name__)

STALE_SWEEP_JOB_ID = "stale_session_sweep"


class SchedulerService:
    def __init__(
        self,
        store: SessionStore,
        stale_after_minutes: int | None = None,
        interval_minutes: int | None = None,
    ) -> None:
        self.store = store
        self.stale_after = timedelta(minutes=stale_after_minutes or settings.stale_session_minutes)
        self.interval_minutes = interval_minutes or settings.stale_sweep_interval_minutes
        self._scheduler: AsyncIOScheduler | None = None

    async def start(self) -> None:
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.sweep_stale_sessions,
            "interval",
            minutes=self.interval_minutes,
            id=STALE_SWEEP_JOB_ID,
            name="Stale Session Sweep",
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(
            "Scheduler started: stale sweep every %d min (threshold %s)",
            self.interval_minutes,
            self.stale_after,
        )

    async def stop(self) -> None:
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Scheduler stopped")

    async def sweep_stale_sessions(self, now: datetime | None = None) -> int:
        cutoff = (now or datetime.utcnow()) - self.stale_after
        try:
            failed = await self.store.fail_stale_sessions(cutoff)
        except StorageError:
            logger.exception("Stale session sweep failed")
            return 0
        if failed:
            logger.warning("Marked %d stale sessions as failed (no progress since %s)", failed, cutoff.isoformat())
        return failed
