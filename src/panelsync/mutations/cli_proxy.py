"""
CLI proxy enablement with an optimistic toggle.

The switch flips in the cached status list immediately; the host's
CliProxyResult then overwrites the row (enabled + base_origin). One toggle
per CLI at a time; toggles for different CLIs run side by side.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from panelsync.cache import keys
from panelsync.cache.store import MISSING, CacheStore
from panelsync.models.cli_proxy import CliProxyResult, CliProxyStatus
from panelsync.mutations.optimistic import MutationResult, MutationStatus, OptimisticMutation

logger = logging.getLogger(__name__)

DEFAULT_ENABLED: Dict[str, bool] = {"claude": True, "codex": False, "gemini": False}


@dataclass(frozen=True)
class SetProxyEnabled:
    cli_key: str
    enabled: bool


def _speculate(current: Optional[List[CliProxyStatus]], args: SetProxyEnabled):
    if not current:
        return MISSING
    if not any(row.cli_key == args.cli_key for row in current):
        return [CliProxyStatus(cli_key=args.cli_key, enabled=args.enabled), *current]
    return [
        row.model_copy(update={"enabled": args.enabled}) if row.cli_key == args.cli_key else row
        for row in current
    ]


def _reconcile(current, result: CliProxyResult, args: SetProxyEnabled):
    # A refused toggle (ok=False) is corrected by the settle refetch instead.
    if not current or not result.ok:
        return MISSING
    return [
        row.model_copy(update={"enabled": result.enabled, "base_origin": result.base_origin})
        if row.cli_key == result.cli_key
        else row
        for row in current
    ]


class CliProxyToggle:
    """Status query + optimistic enable/disable for each CLI's proxy."""

    def __init__(self, store: CacheStore, client):
        self.store = store
        self.client = client
        self.mutation: OptimisticMutation[SetProxyEnabled, CliProxyResult] = OptimisticMutation(
            store,
            keys.cli_proxy_status_all(),
            _speculate,
            self._remote,
            reconcile=_reconcile,
            subject=lambda args: args.cli_key,
            name="cli_proxy_set_enabled",
        )

    def register_query(self) -> None:
        self.store.register(keys.cli_proxy_status_all(), self.client.fetch_cli_proxy_status)

    def enabled_by_cli(self) -> Dict[str, bool]:
        """Per-CLI enabled flags, falling back to defaults for unknown rows."""
        enabled = dict(DEFAULT_ENABLED)
        for row in self.store.get(keys.cli_proxy_status_all()) or []:
            if row.cli_key in enabled:
                enabled[row.cli_key] = bool(row.enabled)
        return enabled

    def is_toggling(self, cli_key: str) -> bool:
        return cli_key in self.mutation.guard

    async def set_enabled(self, cli_key: str, enabled: bool) -> MutationResult[CliProxyResult]:
        """
        Toggle the proxy for ``cli_key``.

        Raises:
            HostCallError: after the cached status list was rolled back.
        """
        outcome = await self.mutation.run(SetProxyEnabled(cli_key, enabled))

        if outcome.status is MutationStatus.CONFIRMED:
            res = outcome.data
            if res.ok:
                logger.info("CLI proxy for %s %s", cli_key, "enabled" if enabled else "disabled")
            else:
                logger.warning(
                    "CLI proxy toggle for %s refused: %s (%s)",
                    cli_key,
                    res.message,
                    res.error_code,
                )
        elif outcome.status is MutationStatus.UNAVAILABLE:
            logger.info("CLI proxy toggle for %s: host unavailable", cli_key)
        return outcome

    async def _remote(self, args: SetProxyEnabled) -> Optional[CliProxyResult]:
        return await self.client.set_cli_proxy_enabled(args.cli_key, args.enabled)
