"""Switching the active sort mode of a CLI, optimistically."""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from panelsync.cache import keys
from panelsync.cache.store import MISSING, CacheStore
from panelsync.models.sort_mode import SortModeActiveRow
from panelsync.mutations.optimistic import MutationResult, MutationStatus, OptimisticMutation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwitchMode:
    cli_key: str
    mode_id: Optional[int]


def _active_mode(rows: Optional[List[SortModeActiveRow]], cli_key: str) -> Optional[int]:
    for row in rows or []:
        if row.cli_key == cli_key:
            return row.mode_id
    return None


def _speculate(current, args: SwitchMode):
    if not current:
        return MISSING
    return [
        row.model_copy(update={"mode_id": args.mode_id}) if row.cli_key == args.cli_key else row
        for row in current
    ]


def _reconcile(current, result: SortModeActiveRow, args: SwitchMode):
    if not current:
        return MISSING
    return [result if row.cli_key == result.cli_key else row for row in current]


class ActiveSortModeSwitch:
    """
    Active-mode query + optimistic switch.

    Unlike the proxy toggle, an unavailable host rolls the guess back: there
    is no mode to show as active without a host that applies it.
    """

    def __init__(self, store: CacheStore, client):
        self.store = store
        self.client = client
        self.mutation: OptimisticMutation[SwitchMode, SortModeActiveRow] = OptimisticMutation(
            store,
            keys.sort_modes_active_list(),
            _speculate,
            self._remote,
            reconcile=_reconcile,
            subject=lambda args: args.cli_key,
            is_noop=lambda current, args: _active_mode(current, args.cli_key) == args.mode_id,
            rollback_on_unavailable=True,
            name="sort_mode_active_set",
        )

    def register_query(self) -> None:
        self.store.register(keys.sort_modes_active_list(), self.client.fetch_active_sort_modes)

    def active_mode_by_cli(self) -> Dict[str, Optional[int]]:
        rows = self.store.get(keys.sort_modes_active_list()) or []
        return {row.cli_key: row.mode_id for row in rows}

    async def switch(self, cli_key: str, mode_id: Optional[int]) -> MutationResult[SortModeActiveRow]:
        """
        Make ``mode_id`` (None = default order) the active mode for ``cli_key``.

        Raises:
            HostCallError: after the cached active list was rolled back.
        """
        outcome = await self.mutation.run(SwitchMode(cli_key, mode_id))
        if outcome.status is MutationStatus.CONFIRMED:
            logger.info(
                "Active sort mode for %s is now %s",
                cli_key,
                outcome.data.mode_id if outcome.data.mode_id is not None else "default",
            )
        return outcome

    async def _remote(self, args: SwitchMode) -> Optional[SortModeActiveRow]:
        return await self.client.set_active_sort_mode(args.cli_key, args.mode_id)
