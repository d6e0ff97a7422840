"""
Background polling of the request-log list.

One APScheduler interval job per list size. Each tick runs the poll query
(which is one RequestLogSynchronizer.sync) through the store, so a failure
shows up as that query's error state. Ticks are skipped while the panel is
not in the foreground.
"""
import logging
from typing import Callable, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from panelsync.cache import keys
from panelsync.cache.store import CacheStore

logger = logging.getLogger(__name__)


class RequestLogPoller:
    """Periodically syncs one request-log list while the panel is in front."""

    def __init__(
        self,
        store: CacheStore,
        scheduler: AsyncIOScheduler,
        limit: int,
        interval_seconds: float,
        is_foreground: Callable[[], bool] = lambda: True,
    ):
        self.store = store
        self.scheduler = scheduler
        self.limit = limit
        self.interval_seconds = interval_seconds
        self._is_foreground = is_foreground
        self._job: Optional[Job] = None

    @property
    def job_id(self) -> str:
        return f"request_logs_poll:{self.limit}"

    @property
    def running(self) -> bool:
        return self._job is not None

    def start(self) -> None:
        if self._job is not None:
            return
        self._job = self.scheduler.add_job(
            self.poll_once,
            trigger="interval",
            seconds=self.interval_seconds,
            id=self.job_id,
            replace_existing=True,
        )
        logger.info(
            "Request log polling started (limit=%d, every %.1fs)",
            self.limit,
            self.interval_seconds,
        )

    def stop(self) -> None:
        job, self._job = self._job, None
        if job is None:
            return
        try:
            job.remove()
        except JobLookupError:
            pass
        logger.info("Request log polling stopped (limit=%d)", self.limit)

    async def poll_once(self) -> Optional[int]:
        """
        One poll tick.

        Returns:
            New record count, None if unavailable or skipped.
            Never raises: the scheduler must stay alive.
        """
        if not self._is_foreground():
            logger.debug("Poll skipped (limit=%d): panel not in foreground", self.limit)
            return None

        poll_key = keys.request_logs_poll_after_id_all(self.limit)
        try:
            count = await self.store.fetch(poll_key, raise_errors=True)
        except Exception as exc:
            logger.error("Request log poll failed (limit=%d): %s", self.limit, exc)
            return None

        if count:
            logger.debug("Poll fetched %d new request log(s)", count)
        return count
