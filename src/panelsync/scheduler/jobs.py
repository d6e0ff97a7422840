"""
The APScheduler instance every background timer of the data layer shares.

Polling, expiry-driven refreshes and throttled event invalidations all run
as jobs on this one AsyncIOScheduler, on the same event loop as the store.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler


def build_scheduler() -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    return AsyncIOScheduler(
        job_defaults={
            # A late tick is worth running once, never twice in a row.
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": None,
        }
    )
