"""
RequestLogSynchronizer — keeps the cached request-log list in step with the host.

Flow for one sync(limit):
  1. Read the cached list for ("requestLogs", "list", "all", limit)
  2. MISSING (primary query has never loaded) → return 0, no host call
  3. cursor = max(id) over the cached list (0 if empty / unavailable)
  4. cursor == 0 → full fetch, sort, replace
     cursor  > 0 → fetch ids > cursor, merge into the cached list
  5. host unavailable (None) → write None, return None

The merge/sort/cursor helpers below are shared by polling and the manual
refresh so both produce identical ordering for the same inputs.

Idempotency: merging the same incoming batch twice is a no-op the second
time, since ids collapse in the merge map.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from panelsync.cache import keys
from panelsync.cache.store import MISSING, CacheStore
from panelsync.models.request_log import RequestLogSummary

logger = logging.getLogger(__name__)


# ─── Ordering helpers ─────────────────────────────────────────────────────────

def effective_timestamp_ms(record: RequestLogSummary) -> int:
    """created_at_ms when present and positive, else created_at * 1000."""
    ms = record.created_at_ms
    if ms is not None and ms > 0:
        return ms
    return record.created_at * 1000


def _order_key(record: RequestLogSummary):
    return (effective_timestamp_ms(record), record.id)


def sort_logs_desc(records: Iterable[RequestLogSummary]) -> List[RequestLogSummary]:
    """Newest first; id descending breaks timestamp ties."""
    return sorted(records, key=_order_key, reverse=True)


def compute_cursor(records) -> int:
    """Highest id in ``records``; 0 for empty, None or MISSING."""
    if not records:
        return 0
    return max((r.id for r in records if r.id > 0), default=0)


def merge_logs(
    previous: Iterable[RequestLogSummary],
    incoming: Iterable[RequestLogSummary],
    limit: int,
) -> List[RequestLogSummary]:
    """Merge a fetched batch into the cached list.

    Incoming rows win over cached rows with the same id (the host is
    authoritative). The result is sorted newest-first and capped at ``limit``.
    """
    by_id: Dict[int, RequestLogSummary] = {}
    for row in incoming:
        by_id[row.id] = row
    for row in previous:
        if row.id not in by_id:
            by_id[row.id] = row
    return sort_logs_desc(by_id.values())[:limit]


# ─── Synchronizer ─────────────────────────────────────────────────────────────

@dataclass
class RefreshResult:
    """Outcome of a manual refresh. ``count`` is None when the host is unavailable."""

    mode: str  # "full" or "incremental"
    count: Optional[int]


class RequestLogSynchronizer:
    """Full-then-incremental sync of the request-log list into the cache."""

    def __init__(self, store: CacheStore, client):
        """
        Args:
            store: The shared CacheStore.
            client: HostClient (or AsyncMock in tests) exposing
                    fetch_logs_latest / fetch_logs_after.
        """
        self.store = store
        self.client = client

    def register_list_query(self, limit: int) -> None:
        """Bind the primary full-load query for ``limit``."""

        async def _load() -> Optional[List[RequestLogSummary]]:
            items = await self.client.fetch_logs_latest(limit)
            if items is None:
                return None
            return sort_logs_desc(items)[:limit]

        self.store.register(keys.request_logs_list_all(limit), _load)

    def register_poll_query(self, limit: int) -> None:
        """Bind the polling query whose fetch is one sync(limit).

        A failed sync is recorded as this entry's error; the log list itself
        is left as it was.
        """

        async def _poll() -> Optional[int]:
            return await self.sync(limit)

        self.store.register(keys.request_logs_poll_after_id_all(limit), _poll)

    async def sync(self, limit: int) -> Optional[int]:
        """
        Pull new request logs into the cache.

        Args:
            limit: List size; also selects which cached list is synced.

        Returns:
            Number of records fetched (0 for no-op), or None if the host is
            unavailable.

        Raises:
            HostCallError: on transport/backend failure (cache left untouched).
        """
        list_key = keys.request_logs_list_all(limit)
        previous = self.store.get(list_key)

        # Wait until the primary list query has loaded at least once.
        if previous is MISSING:
            logger.debug("sync(%d): baseline not loaded yet, skipping", limit)
            return 0

        cursor = compute_cursor(previous)
        if cursor == 0:
            items = await self.client.fetch_logs_latest(limit)
            return self._apply_full(limit, items)

        items = await self.client.fetch_logs_after(cursor, limit)
        return self._apply_incremental(limit, items)

    async def refresh(self, limit: int) -> RefreshResult:
        """
        Manual (pull-to-refresh) sync.

        Same semantics as sync(), except an unloaded list is treated as a cold
        start and fully fetched instead of skipped.

        Raises:
            HostCallError: propagated to the caller for UI feedback.
        """
        previous = self.store.get(keys.request_logs_list_all(limit))
        cursor = compute_cursor(previous)

        if cursor == 0:
            items = await self.client.fetch_logs_latest(limit)
            return RefreshResult(mode="full", count=self._apply_full(limit, items))

        items = await self.client.fetch_logs_after(cursor, limit)
        return RefreshResult(
            mode="incremental", count=self._apply_incremental(limit, items)
        )

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _apply_full(
        self, limit: int, items: Optional[List[RequestLogSummary]]
    ) -> Optional[int]:
        list_key = keys.request_logs_list_all(limit)
        if items is None:
            self.store.set(list_key, None)
            return None
        self.store.set(list_key, sort_logs_desc(items)[:limit])
        logger.debug("sync(%d): full load of %d record(s)", limit, len(items))
        return len(items)

    def _apply_incremental(
        self, limit: int, items: Optional[List[RequestLogSummary]]
    ) -> Optional[int]:
        list_key = keys.request_logs_list_all(limit)
        if items is None:
            self.store.set(list_key, None)
            return None
        if not items:
            return 0
        self.store.update(list_key, lambda cur: merge_logs(cur or [], items, limit))
        logger.debug("sync(%d): merged %d new record(s)", limit, len(items))
        return len(items)
