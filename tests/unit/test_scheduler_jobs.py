"""Tests for the shared APScheduler configuration."""
import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from panelsync.scheduler.jobs import build_scheduler


class TestBuildScheduler:
    def test_returns_scheduler(self):
        assert isinstance(build_scheduler(), AsyncIOScheduler)

    def test_scheduler_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        assert not build_scheduler().running

    def test_no_jobs_until_components_start(self):
        assert build_scheduler().get_jobs() == []

    @pytest.mark.asyncio
    async def test_job_defaults(self):
        scheduler = build_scheduler()
        # defaults are applied when a job reaches a running scheduler
        scheduler.start(paused=True)
        try:
            job = scheduler.add_job(lambda: None, trigger="interval", seconds=1)
            assert job.coalesce is True
            assert job.max_instances == 1
            assert job.misfire_grace_time is None
        finally:
            scheduler.shutdown(wait=False)
