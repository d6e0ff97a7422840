"""
ExpiryRefreshScheduler — refresh circuit rows exactly when they expire.

Circuit rows carry ``open_until`` / ``cooldown_until`` (unix seconds). Rather
than polling, we watch every CLI's cached circuit list and keep ONE date job
per scope, due just after the nearest future expiry:

    delay = max(min_delay, max(0, deadline - now) + epsilon)

When it fires, the circuit keys are invalidated; the refetch updates the
cache, which notifies us, which schedules the next deadline. Rows that are
open or cooling down but carry no future expiry fall back to a fixed period
so they are still refreshed eventually. No watched rows, no timer.

The pending job is always cancelled before its replacement is added.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from panelsync.cache import keys
from panelsync.cache.store import CacheStore, QueryKey, QueryState, Subscription
from panelsync.models.gateway import ProviderCircuitStatus

logger = logging.getLogger(__name__)


def is_watched(row: ProviderCircuitStatus) -> bool:
    """Open circuits and rows carrying any expiry need refreshing."""
    return row.state == "OPEN" or row.open_until is not None or row.cooldown_until is not None


def next_deadline(rows: Iterable[ProviderCircuitStatus], now: float) -> Optional[float]:
    """Earliest open_until/cooldown_until strictly after ``now``, across all rows."""
    best: Optional[float] = None
    for row in rows:
        for until in (row.open_until, row.cooldown_until):
            if until is None or until <= now:
                continue
            if best is None or until < best:
                best = until
    return best


@dataclass
class ScheduledRefresh:
    seq: int
    deadline: Optional[float]  # None = fallback period
    delay: float
    run_at: float
    job: Job


class ExpiryRefreshScheduler:
    """Keeps at most one pending refresh for the watched circuit partitions."""

    def __init__(
        self,
        store: CacheStore,
        scheduler: AsyncIOScheduler,
        client,
        cli_keys: Iterable[str],
        *,
        scope: str = "gateway_circuits",
        fallback_seconds: float = 30.0,
        epsilon_seconds: float = 0.25,
        min_delay_seconds: float = 0.2,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.scheduler = scheduler
        self.client = client
        self.cli_keys = list(cli_keys)
        self.scope = scope
        self.fallback_seconds = fallback_seconds
        self.epsilon_seconds = epsilon_seconds
        self.min_delay_seconds = min_delay_seconds
        self._clock = clock

        self._pending: Optional[ScheduledRefresh] = None
        self._seq = 0
        self._subscriptions: List[Subscription] = []
        self._seen_versions: Dict[QueryKey, int] = {}

    @property
    def job_id(self) -> str:
        return f"expiry_refresh:{self.scope}"

    @property
    def pending(self) -> Optional[ScheduledRefresh]:
        return self._pending

    def partition_keys(self) -> List[QueryKey]:
        return [keys.gateway_circuit_status(cli) for cli in self.cli_keys]

    def register_queries(self) -> None:
        for cli in self.cli_keys:
            self.store.register(
                keys.gateway_circuit_status(cli), partial(self.client.fetch_circuit_status, cli)
            )

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Observe every partition (loading them if needed) and schedule once."""
        if self._subscriptions:
            return
        for key in self.partition_keys():
            self._seen_versions[key] = self.store.get_state(key).version
            self._subscriptions.append(self.store.observe(key, partial(self._on_change, key)))
        self.reschedule()

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()
        self._cancel_pending()

    # ─── Scheduling ───────────────────────────────────────────────────────────

    def watched_rows(self) -> List[ProviderCircuitStatus]:
        rows: List[ProviderCircuitStatus] = []
        for key in self.partition_keys():
            rows.extend(r for r in (self.store.get(key) or []) if is_watched(r))
        return rows

    def reschedule(self) -> Optional[ScheduledRefresh]:
        """Replace the pending refresh with one for the current data."""
        self._cancel_pending()

        rows = self.watched_rows()
        if not rows:
            logger.debug("%s: nothing to watch, no refresh scheduled", self.scope)
            return None

        now = self._clock()
        deadline = next_deadline(rows, now)
        if deadline is None:
            delay = self.fallback_seconds
        else:
            delay = max(self.min_delay_seconds, max(0.0, deadline - now) + self.epsilon_seconds)

        self._seq += 1
        run_at = now + delay
        job = self.scheduler.add_job(
            self._fire,
            trigger="date",
            run_date=datetime.fromtimestamp(run_at, tz=timezone.utc),
            args=[self._seq],
            id=self.job_id,
            replace_existing=True,
        )
        self._pending = ScheduledRefresh(self._seq, deadline, delay, run_at, job)
        logger.debug(
            "%s: refresh in %.2fs (deadline=%s, %d watched row(s))",
            self.scope,
            delay,
            deadline,
            len(rows),
        )
        return self._pending

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _on_change(self, key: QueryKey, state: QueryState) -> None:
        if state.version == self._seen_versions.get(key):
            return  # stale-mark or error: data unchanged
        self._seen_versions[key] = state.version
        self.reschedule()

    async def _fire(self, seq: int) -> None:
        if self._pending is None or self._pending.seq != seq:
            logger.debug("%s: superseded refresh %d ignored", self.scope, seq)
            return
        self._cancel_pending()

        try:
            await self.store.invalidate(keys.gateway_circuits())
        except Exception:
            logger.exception("%s: expiry refresh failed", self.scope)

        # Refetch failed or changed nothing we track: recompute from what we have.
        if self._pending is None and self._subscriptions:
            self.reschedule()

    def _cancel_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return
        try:
            pending.job.remove()
        except JobLookupError:
            pass  # already ran
