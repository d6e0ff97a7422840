"""
GatewayQuerySync — turn host gateway events into cache invalidations.

Bursts are throttled per scope: the first event arms a timer, later events
are dropped until it fires, then the scope's keys are invalidated once.

  gateway:circuit  → gateway circuit rows
  gateway:status   → gateway status
  gateway:request  → request-log lists + usage
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from panelsync.cache import keys
from panelsync.cache.store import CacheStore, QueryKey, Subscription
from panelsync.events.bridge import EventBridge

logger = logging.getLogger(__name__)

EVENT_CIRCUIT = "gateway:circuit"
EVENT_STATUS = "gateway:status"
EVENT_REQUEST = "gateway:request"


@dataclass
class _Scope:
    name: str
    prefixes: Tuple[QueryKey, ...]
    throttle_seconds: float
    job: Optional[Job] = None


class GatewayQuerySync:
    """Subscribes to gateway events and invalidates the matching queries."""

    def __init__(
        self,
        store: CacheStore,
        bridge: EventBridge,
        scheduler: AsyncIOScheduler,
        *,
        circuit_throttle_seconds: float = 0.5,
        status_throttle_seconds: float = 0.3,
        request_throttle_seconds: float = 1.0,
    ):
        self.store = store
        self.bridge = bridge
        self.scheduler = scheduler
        self._scopes: Dict[str, _Scope] = {
            EVENT_CIRCUIT: _Scope("circuit", (keys.gateway_circuits(),), circuit_throttle_seconds),
            EVENT_STATUS: _Scope("status", (keys.gateway_status(),), status_throttle_seconds),
            EVENT_REQUEST: _Scope(
                "request",
                (keys.request_logs_lists(), keys.USAGE_ALL),
                request_throttle_seconds,
            ),
        }
        self._subscriptions: List[Subscription] = []
        self._cancelled = False

    def start(self) -> None:
        if self._subscriptions:
            return
        self._cancelled = False
        for event, scope in self._scopes.items():
            self._subscriptions.append(
                self.bridge.listen(event, lambda _payload, s=scope: self._schedule(s))
            )

    def close(self) -> None:
        self._cancelled = True
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()
        for scope in self._scopes.values():
            job, scope.job = scope.job, None
            if job is not None:
                try:
                    job.remove()
                except JobLookupError:
                    pass

    def is_armed(self, event: str) -> bool:
        return self._scopes[event].job is not None

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _schedule(self, scope: _Scope) -> None:
        if self._cancelled or scope.job is not None:
            return
        scope.job = self.scheduler.add_job(
            self._flush,
            trigger="date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=scope.throttle_seconds),
            args=[scope],
            id=f"gateway_event_throttle:{scope.name}",
            replace_existing=True,
        )

    async def _flush(self, scope: _Scope) -> None:
        scope.job = None
        if self._cancelled:
            return
        try:
            for prefix in scope.prefixes:
                await self.store.invalidate(prefix)
        except Exception:
            logger.exception("Invalidation after gateway %s event failed", scope.name)
