"""Manual circuit breaker resets (not optimistic: the host decides the new state)."""
import logging
from typing import Optional

from panelsync.cache import keys
from panelsync.cache.store import CacheStore
from panelsync.mutations.optimistic import InFlightGuard, MutationResult, MutationStatus

logger = logging.getLogger(__name__)


class CircuitResetter:
    """Resets provider circuits, one request per provider at a time."""

    def __init__(self, store: CacheStore, client):
        self.store = store
        self.client = client
        self.guard = InFlightGuard()

    def is_resetting(self, provider_id: int) -> bool:
        return provider_id in self.guard

    async def reset_provider(
        self, provider_id: int, cli_key: Optional[str] = None
    ) -> MutationResult[bool]:
        """
        Reset one provider's circuit, then refresh the affected circuit rows.

        Args:
            provider_id: Provider to reset.
            cli_key: Owning CLI if known; narrows the invalidation.

        Raises:
            HostCallError: if the host call failed.
        """
        if not self.guard.acquire(provider_id):
            return MutationResult(MutationStatus.IN_FLIGHT)
        try:
            ok = await self.client.reset_circuit_provider(provider_id)
        finally:
            self.guard.release(provider_id)

        if ok is None:
            return MutationResult(MutationStatus.UNAVAILABLE)

        if ok:
            logger.info("Circuit reset for provider %d", provider_id)
        else:
            logger.warning("Circuit reset for provider %d was rejected", provider_id)
        await self.store.invalidate(
            keys.gateway_circuit_status(cli_key) if cli_key else keys.gateway_circuits(),
            cancel_refetch=True,
        )
        return MutationResult(MutationStatus.CONFIRMED, ok)

    async def reset_cli(self, cli_key: str) -> MutationResult[int]:
        """Reset every provider circuit of ``cli_key``; data = number reset."""
        count = await self.client.reset_circuit_cli(cli_key)
        if count is None:
            return MutationResult(MutationStatus.UNAVAILABLE)
        logger.info("Reset %d circuit(s) for %s", count, cli_key)
        await self.store.invalidate(keys.gateway_circuit_status(cli_key), cancel_refetch=True)
        return MutationResult(MutationStatus.CONFIRMED, count)
