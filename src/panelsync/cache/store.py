"""
CacheStore: the single process-wide keyed query cache.

Every component that reads or writes cached host data receives the same
CacheStore instance; nobody keeps a private copy. The only primitives are:

  get / set          — read, whole-value replace
  update             — synchronous read-modify-write
  invalidate         — mark stale, refetch whatever is being observed
  cancel             — abort in-flight fetches (used before speculating)

Values are one of MISSING (never loaded), None (host unavailable) or the
loaded data. Writes are atomic from the event loop's point of view because
nothing in set/update awaits.
"""
import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]
Fetcher = Callable[[], Awaitable[Any]]
Observer = Callable[["QueryState"], None]


class _Missing:
    """Sentinel for "never fetched", distinct from None ("unavailable")."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


MISSING = _Missing()


class Subscription:
    """Handle returned by every registration; call unsubscribe() on teardown."""

    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe = unsubscribe
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._unsubscribe()


@dataclass
class QueryState:
    """Observer-facing snapshot of one cache entry."""

    value: Any = MISSING
    error: Optional[BaseException] = None
    is_stale: bool = False
    is_fetching: bool = False
    version: int = 0
    updated_at: Optional[float] = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return "error"
        if self.value is MISSING:
            return "pending"
        return "success"


@dataclass
class _Entry:
    state: QueryState = field(default_factory=QueryState)
    fetcher: Optional[Fetcher] = None
    observers: List[Observer] = field(default_factory=list)
    task: Optional["asyncio.Task[Any]"] = None


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    """True if ``key`` starts with ``prefix`` (element-wise)."""
    return tuple(key[: len(prefix)]) == tuple(prefix)


class CacheStore:
    """In-memory, versioned, observable query cache."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: Dict[QueryKey, _Entry] = {}
        self._clock = clock
        self._background: Set["asyncio.Task[Any]"] = set()

    # ─── Reads ────────────────────────────────────────────────────────────────

    def get(self, key: QueryKey) -> Any:
        entry = self._entries.get(tuple(key))
        return entry.state.value if entry else MISSING

    def get_state(self, key: QueryKey) -> QueryState:
        entry = self._entries.get(tuple(key))
        return replace(entry.state) if entry else QueryState()

    def keys(self, prefix: QueryKey = ()) -> List[QueryKey]:
        return [k for k in self._entries if key_matches(k, prefix)]

    # ─── Writes ───────────────────────────────────────────────────────────────

    def register(self, key: QueryKey, fetcher: Fetcher) -> None:
        """Bind the async fetcher used to (re)load ``key``."""
        self._entry(key).fetcher = fetcher

    def set(self, key: QueryKey, value: Any) -> None:
        """Replace the whole cached value and notify observers.

        ``set(key, MISSING)`` returns the entry to the never-loaded state.
        """
        key = tuple(key)
        entry = self._entry(key)
        state = entry.state
        state.value = value
        state.error = None
        state.is_stale = False
        state.version += 1
        state.updated_at = None if value is MISSING else self._clock()
        self._notify(key, entry)

    def update(self, key: QueryKey, fn: Callable[[Any], Any]) -> Any:
        """Read-modify-write. ``fn`` must be synchronous.

        Returning MISSING from ``fn`` skips the write.

        Raises:
            TypeError: if ``fn`` returns an awaitable.
        """
        current = self.get(key)
        nxt = fn(current)
        if inspect.isawaitable(nxt):
            if inspect.iscoroutine(nxt):
                nxt.close()
            raise TypeError(
                f"update function for {tuple(key)!r} returned an awaitable; "
                "read-modify-write updates must not await"
            )
        if nxt is MISSING:
            return current
        self.set(key, nxt)
        return nxt

    # ─── Observation ──────────────────────────────────────────────────────────

    def observe(self, key: QueryKey, callback: Observer) -> Subscription:
        """Subscribe to changes of ``key``.

        A first observation of an unloaded (or stale) entry with a registered
        fetcher starts a background fetch; must be called on a running loop
        for that to happen.
        """
        key = tuple(key)
        entry = self._entry(key)
        entry.observers.append(callback)

        def _unsubscribe() -> None:
            if callback in entry.observers:
                entry.observers.remove(callback)

        if entry.fetcher is not None and (
            entry.state.value is MISSING or entry.state.is_stale
        ):
            self._spawn(self.fetch(key))
        return Subscription(_unsubscribe)

    # ─── Fetching ─────────────────────────────────────────────────────────────

    async def fetch(self, key: QueryKey, *, raise_errors: bool = False) -> Any:
        """Run the registered fetcher for ``key`` and store its result.

        Concurrent callers share one in-flight task. A failed fetch records
        the error on the entry and leaves the previous value in place.

        Raises:
            KeyError: if no fetcher is registered for ``key``.
            Exception: the fetcher's own error, only when ``raise_errors``.
        """
        key = tuple(key)
        entry = self._entry(key)
        if entry.fetcher is None:
            raise KeyError(f"no fetcher registered for {key!r}")

        task = entry.task
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._run_fetch(key, entry))
            entry.task = task

        try:
            ok, result = await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return entry.state.value
            raise

        if not ok:
            if raise_errors:
                raise result
            return entry.state.value
        return result

    async def _run_fetch(self, key: QueryKey, entry: _Entry) -> Tuple[bool, Any]:
        entry.state.is_fetching = True
        error: Optional[Exception] = None
        try:
            value = await entry.fetcher()
        except asyncio.CancelledError:
            logger.debug("Fetch of %r cancelled", key)
            raise
        except Exception as exc:
            logger.warning("Fetch of %r failed: %s", key, exc)
            error = exc
        finally:
            # a cancelled task must not clear the flag of its replacement
            if entry.task is asyncio.current_task():
                entry.task = None
                entry.state.is_fetching = False
            elif entry.task is None:
                entry.state.is_fetching = False

        if error is not None:
            entry.state.error = error
            self._notify(key, entry)
            return False, error
        self.set(key, value)
        return True, value

    def cancel(self, prefix: QueryKey) -> int:
        """Cancel in-flight fetches under ``prefix``. Returns how many."""
        cancelled = 0
        for key, entry in self._entries.items():
            if key_matches(key, prefix) and self._cancel_task(entry):
                cancelled += 1
        if cancelled:
            logger.debug("Cancelled %d in-flight fetch(es) under %r", cancelled, tuple(prefix))
        return cancelled

    async def invalidate(
        self,
        prefix: QueryKey,
        *,
        refetch: bool = True,
        cancel_refetch: bool = False,
    ) -> None:
        """Mark every entry under ``prefix`` stale and refetch the observed ones.

        Unobserved entries stay stale and reload on their next observation.

        Args:
            refetch: Refetch observed entries after marking them stale.
            cancel_refetch: Cancel fetches already in flight under ``prefix``
                instead of joining them. Use it after a write: a fetch that
                started before the write landed may carry the old state.
        """
        matched = [(k, e) for k, e in self._entries.items() if key_matches(k, prefix)]
        if cancel_refetch:
            cancelled = sum(1 for _, e in matched if self._cancel_task(e))
            if cancelled:
                logger.debug(
                    "Cancelled %d stale fetch(es) under %r", cancelled, tuple(prefix)
                )
        for key, entry in matched:
            entry.state.is_stale = True
            self._notify(key, entry)

        if not refetch:
            return
        active = [k for k, e in matched if e.fetcher is not None and e.observers]
        if active:
            await asyncio.gather(*(self.fetch(k) for k in active))

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _entry(self, key: QueryKey) -> _Entry:
        key = tuple(key)
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry()
            self._entries[key] = entry
        return entry

    def _cancel_task(self, entry: _Entry) -> bool:
        task = entry.task
        if task is None or task.done():
            return False
        task.cancel()
        entry.task = None
        entry.state.is_fetching = False
        return True

    def _notify(self, key: QueryKey, entry: _Entry) -> None:
        snapshot = replace(entry.state)
        for callback in list(entry.observers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Observer of %r raised", key)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
