"""
OptimisticMutation — apply a change locally first, then confirm with the host.

Protocol for one run(args):
  0. Guard: same subject already in flight → IN_FLIGHT; already in the
     desired state → NOOP. Neither touches the cache or the host.
  1. Speculate: cancel in-flight fetches of the key, deep-copy the current
     value as the snapshot, write the speculative value. No await happens
     before the speculative value is visible.
  2. Remote call:
       result      → reconcile the affected entry with the host's answer
       None        → UNAVAILABLE; keep the guess (or roll back if configured)
       exception   → restore the snapshot exactly, re-raise
  3. Settle: invalidate the key so the next observation reconciles with the
     host. Fetches started during step 2 are cancelled and restarted, never
     joined. Always runs, and always after step 2's cache write.

Cancellation of the awaiting task is treated like a failure: the snapshot
is restored before CancelledError propagates.
"""
import asyncio
import copy
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Hashable, Optional, Set, TypeVar

from panelsync.cache.store import CacheStore, QueryKey

logger = logging.getLogger(__name__)

I = TypeVar("I")
R = TypeVar("R")


class MutationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    UNAVAILABLE = "unavailable"
    IN_FLIGHT = "in_flight"
    NOOP = "noop"


@dataclass
class MutationResult(Generic[R]):
    status: MutationStatus
    data: Optional[R] = None

    @property
    def confirmed(self) -> bool:
        return self.status is MutationStatus.CONFIRMED


class InFlightGuard:
    """Tracks which subjects have a mutation pending."""

    def __init__(self):
        self._subjects: Set[Hashable] = set()

    def __contains__(self, subject: Hashable) -> bool:
        return subject in self._subjects

    def acquire(self, subject: Hashable) -> bool:
        """Mark ``subject`` busy. False if it already was."""
        if subject in self._subjects:
            return False
        self._subjects.add(subject)
        return True

    def release(self, subject: Hashable) -> None:
        self._subjects.discard(subject)


class OptimisticMutation(Generic[I, R]):
    """Speculate → remote call → reconcile/rollback → settle, for one cache key."""

    def __init__(
        self,
        store: CacheStore,
        key: QueryKey,
        speculate: Callable[[Any, I], Any],
        remote: Callable[[I], Awaitable[Optional[R]]],
        *,
        reconcile: Optional[Callable[[Any, R, I], Any]] = None,
        subject: Optional[Callable[[I], Hashable]] = None,
        is_noop: Optional[Callable[[Any, I], bool]] = None,
        rollback_on_unavailable: bool = False,
        name: str = "mutation",
    ):
        """
        Args:
            store: The shared CacheStore.
            key: Cache key the mutation speculates on.
            speculate: Pure ``(current, args) -> new value``; return MISSING
                to leave the cache alone.
            remote: Host call; returns the confirmed result or None when the
                host is unavailable, raises on failure.
            reconcile: Pure ``(current, result, args) -> new value`` applied on
                success. Without it the speculative value stands until settle.
            subject: Maps args to the subject the in-flight guard tracks.
                Without it mutations are never rejected.
            is_noop: ``(current, args) -> bool``; True short-circuits.
            rollback_on_unavailable: Restore the snapshot when the host is
                unavailable instead of keeping the guess.
            name: Used in log lines.
        """
        self.store = store
        self.key = tuple(key)
        self._speculate = speculate
        self._remote = remote
        self._reconcile = reconcile
        self._subject = subject
        self._is_noop = is_noop
        self.rollback_on_unavailable = rollback_on_unavailable
        self.name = name
        self.guard = InFlightGuard()

    def is_pending(self, args: I) -> bool:
        return self._subject is not None and self._subject(args) in self.guard

    async def run(self, args: I) -> MutationResult[R]:
        """
        Execute the mutation.

        Returns:
            MutationResult with CONFIRMED (data = host result), UNAVAILABLE,
            IN_FLIGHT or NOOP.

        Raises:
            Whatever the remote call raised, after the cache was rolled back.
        """
        subject = self._subject(args) if self._subject is not None else None
        if subject is not None and not self.guard.acquire(subject):
            logger.debug("%s: %r already in flight, ignoring", self.name, subject)
            return MutationResult(MutationStatus.IN_FLIGHT)

        try:
            if self._is_noop is not None and self._is_noop(self.store.get(self.key), args):
                return MutationResult(MutationStatus.NOOP)

            snapshot = self._begin(args)
            try:
                result = await self._remote(args)
            except (Exception, asyncio.CancelledError):
                self._restore(snapshot)
                logger.warning("%s: rolled back %r", self.name, self.key)
                raise
            else:
                return self._commit(args, result, snapshot)
            finally:
                await self.store.invalidate(self.key, cancel_refetch=True)
        finally:
            if subject is not None:
                self.guard.release(subject)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _begin(self, args: I) -> Any:
        self.store.cancel(self.key)
        snapshot = copy.deepcopy(self.store.get(self.key))
        self.store.update(self.key, lambda cur: self._speculate(cur, args))
        return snapshot

    def _commit(self, args: I, result: Optional[R], snapshot: Any) -> MutationResult[R]:
        if result is None:
            if self.rollback_on_unavailable:
                self._restore(snapshot)
            logger.info("%s: host unavailable", self.name)
            return MutationResult(MutationStatus.UNAVAILABLE)

        if self._reconcile is not None:
            self.store.update(self.key, lambda cur: self._reconcile(cur, result, args))
        return MutationResult(MutationStatus.CONFIRMED, result)

    def _restore(self, snapshot: Any) -> None:
        self.store.set(self.key, snapshot)
