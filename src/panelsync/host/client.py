"""
Typed host commands consumed by the data layer.

Each method maps to one host command, validates the payload into our
models and passes None ("host unavailable") straight through.
"""
from typing import Any, List, Optional

from panelsync.host.invoke import HostInvoker, Invoker
from panelsync.models.cli_proxy import CliProxyResult, CliProxyStatus
from panelsync.models.gateway import GatewayStatus, ProviderCircuitStatus
from panelsync.models.request_log import RequestLogSummary
from panelsync.models.sort_mode import SortModeActiveRow


def _rows(model, payload: Any) -> Optional[list]:
    if payload is None:
        return None
    return [model.model_validate(row) for row in payload]


def _one(model, payload: Any):
    if payload is None:
        return None
    return model.model_validate(payload)


class HostClient:
    """Async, typed facade over HostInvoker."""

    def __init__(self, invoker: Optional[Invoker] = None, host: Optional[HostInvoker] = None):
        """
        Args:
            invoker: Raw host command callable (see HostInvoker).
            host: Pre-built HostInvoker; takes precedence over ``invoker``.
        """
        self._host = host or HostInvoker(invoker)

    @property
    def available(self) -> bool:
        return self._host.available

    # ─── Request logs ─────────────────────────────────────────────────────────

    async def fetch_logs_latest(self, limit: int) -> Optional[List[RequestLogSummary]]:
        """Fetch up to ``limit`` most recent request logs across all CLIs."""
        payload = await self._host.call(
            "Load request logs", "request_logs_list_all", {"limit": limit}
        )
        return _rows(RequestLogSummary, payload)

    async def fetch_logs_after(
        self, after_id: int, limit: int
    ) -> Optional[List[RequestLogSummary]]:
        """Fetch request logs with id strictly greater than ``after_id``."""
        payload = await self._host.call(
            "Load new request logs",
            "request_logs_list_after_id_all",
            {"afterId": after_id, "limit": limit},
        )
        return _rows(RequestLogSummary, payload)

    # ─── CLI proxy ────────────────────────────────────────────────────────────

    async def fetch_cli_proxy_status(self) -> Optional[List[CliProxyStatus]]:
        payload = await self._host.call("Load CLI proxy status", "cli_proxy_status_all")
        return _rows(CliProxyStatus, payload)

    async def set_cli_proxy_enabled(
        self, cli_key: str, enabled: bool
    ) -> Optional[CliProxyResult]:
        payload = await self._host.call(
            "Toggle CLI proxy",
            "cli_proxy_set_enabled",
            {"cliKey": cli_key, "enabled": enabled},
        )
        return _one(CliProxyResult, payload)

    # ─── Sort modes ───────────────────────────────────────────────────────────

    async def fetch_active_sort_modes(self) -> Optional[List[SortModeActiveRow]]:
        payload = await self._host.call("Load active sort modes", "sort_mode_active_list")
        return _rows(SortModeActiveRow, payload)

    async def set_active_sort_mode(
        self, cli_key: str, mode_id: Optional[int]
    ) -> Optional[SortModeActiveRow]:
        payload = await self._host.call(
            "Set active sort mode",
            "sort_mode_active_set",
            {"cliKey": cli_key, "modeId": mode_id},
        )
        return _one(SortModeActiveRow, payload)

    # ─── Gateway ──────────────────────────────────────────────────────────────

    async def fetch_gateway_status(self) -> Optional[GatewayStatus]:
        payload = await self._host.call("Load gateway status", "gateway_status")
        return _one(GatewayStatus, payload)

    async def fetch_circuit_status(
        self, cli_key: str
    ) -> Optional[List[ProviderCircuitStatus]]:
        payload = await self._host.call(
            "Load circuit breaker status", "gateway_circuit_status", {"cliKey": cli_key}
        )
        return _rows(ProviderCircuitStatus, payload)

    async def reset_circuit_provider(self, provider_id: int) -> Optional[bool]:
        return await self._host.call(
            "Reset provider circuit",
            "gateway_circuit_reset_provider",
            {"providerId": provider_id},
        )

    async def reset_circuit_cli(self, cli_key: str) -> Optional[int]:
        return await self._host.call(
            "Reset CLI circuits", "gateway_circuit_reset_cli", {"cliKey": cli_key}
        )
