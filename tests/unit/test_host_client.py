"""Tests for HostInvoker outcomes and HostClient command mapping."""
import logging
import threading

import pytest

from panelsync.host.client import HostClient
from panelsync.host.invoke import HostCallError, HostInvoker, NullResultError
from panelsync.models.cli_proxy import CliProxyResult
from panelsync.models.gateway import GatewayStatus, ProviderCircuitStatus
from panelsync.models.request_log import RequestLogSummary


class RecordingHost:
    """Async invoker that records (cmd, args) and answers from a dict."""

    def __init__(self, answers=None):
        self.answers = answers or {}
        self.calls = []

    async def __call__(self, cmd, args=None):
        self.calls.append((cmd, args))
        answer = self.answers.get(cmd)
        if isinstance(answer, Exception):
            raise answer
        return answer


# ─── HostInvoker ──────────────────────────────────────────────────────────────

class TestHostInvoker:
    @pytest.mark.asyncio
    async def test_no_host_is_unavailable(self):
        host = HostInvoker()
        assert not host.available
        assert await host.call("Load", "gateway_status") is None

    @pytest.mark.asyncio
    async def test_async_invoker_payload(self):
        async def _invoke(cmd, args):
            return {"cmd": cmd, "args": args}

        host = HostInvoker(_invoke)
        assert await host.call("Load", "gateway_status", {"a": 1}) == {
            "cmd": "gateway_status",
            "args": {"a": 1},
        }

    @pytest.mark.asyncio
    async def test_blocking_invoker_runs_off_loop(self):
        loop_thread = threading.get_ident()
        threads = []

        def _invoke(cmd, args):
            threads.append(threading.get_ident())
            return [1, 2]

        assert await HostInvoker(_invoke).call("Load", "cmd") == [1, 2]
        assert threads and threads[0] != loop_thread

    @pytest.mark.asyncio
    async def test_invoker_error_is_wrapped_and_logged(self, caplog):
        def _invoke(cmd, args):
            raise ConnectionError("bridge closed")

        with caplog.at_level(logging.ERROR, logger="panelsync.host.invoke"):
            with pytest.raises(HostCallError) as excinfo:
                await HostInvoker(_invoke).call("Toggle CLI proxy", "cli_proxy_set_enabled", {"cliKey": "codex"})

        err = excinfo.value
        assert err.cmd == "cli_proxy_set_enabled"
        assert err.cmd_args == {"cliKey": "codex"}
        assert isinstance(err.__cause__, ConnectionError)
        assert "Toggle CLI proxy" in caplog.text
        assert "cli_proxy_set_enabled" in caplog.text

    @pytest.mark.asyncio
    async def test_null_result_is_an_error(self):
        async def _invoke(cmd, args):
            return None

        with pytest.raises(NullResultError, match="IPC_NULL_RESULT"):
            await HostInvoker(_invoke).call("Load", "gateway_status")

    @pytest.mark.asyncio
    async def test_null_result_allowed(self):
        async def _invoke(cmd, args):
            return None

        assert await HostInvoker(_invoke).call("Load", "x", allow_null=True) is None


# ─── HostClient ───────────────────────────────────────────────────────────────

class TestHostClient:
    @pytest.mark.asyncio
    async def test_fetch_logs_after_args_and_models(self):
        host = RecordingHost({
            "request_logs_list_after_id_all": [
                {"id": 6, "created_at": 100, "cli_key": "claude", "provider_chain": ["a"]},
            ]
        })
        rows = await HostClient(host).fetch_logs_after(5, 50)

        assert host.calls == [("request_logs_list_after_id_all", {"afterId": 5, "limit": 50})]
        assert isinstance(rows[0], RequestLogSummary)
        assert rows[0].id == 6
        # unknown host fields are carried through
        assert rows[0].model_dump()["provider_chain"] == ["a"]

    @pytest.mark.asyncio
    async def test_command_table(self):
        host = RecordingHost({
            "request_logs_list_all": [],
            "cli_proxy_status_all": [],
            "cli_proxy_set_enabled": {"cli_key": "codex", "enabled": True, "ok": True},
            "sort_mode_active_list": [],
            "sort_mode_active_set": {"cli_key": "codex", "mode_id": 2},
            "gateway_status": {"running": True, "port": 37123},
            "gateway_circuit_status": [],
            "gateway_circuit_reset_provider": True,
            "gateway_circuit_reset_cli": 3,
        })
        client = HostClient(host)

        await client.fetch_logs_latest(20)
        await client.fetch_cli_proxy_status()
        await client.set_cli_proxy_enabled("codex", True)
        await client.fetch_active_sort_modes()
        await client.set_active_sort_mode("codex", 2)
        await client.fetch_gateway_status()
        await client.fetch_circuit_status("gemini")
        await client.reset_circuit_provider(4)
        await client.reset_circuit_cli("gemini")

        assert host.calls == [
            ("request_logs_list_all", {"limit": 20}),
            ("cli_proxy_status_all", None),
            ("cli_proxy_set_enabled", {"cliKey": "codex", "enabled": True}),
            ("sort_mode_active_list", None),
            ("sort_mode_active_set", {"cliKey": "codex", "modeId": 2}),
            ("gateway_status", None),
            ("gateway_circuit_status", {"cliKey": "gemini"}),
            ("gateway_circuit_reset_provider", {"providerId": 4}),
            ("gateway_circuit_reset_cli", {"cliKey": "gemini"}),
        ]

    @pytest.mark.asyncio
    async def test_payloads_validated(self):
        host = RecordingHost({
            "cli_proxy_set_enabled": {
                "trace_id": "t",
                "cli_key": "codex",
                "enabled": True,
                "ok": True,
                "base_origin": "http://127.0.0.1:37123",
            },
            "gateway_status": {"running": False},
            "gateway_circuit_status": [{"provider_id": 1, "state": "OPEN", "open_until": 10}],
        })
        client = HostClient(host)

        assert isinstance(await client.set_cli_proxy_enabled("codex", True), CliProxyResult)
        status = await client.fetch_gateway_status()
        assert isinstance(status, GatewayStatus) and status.running is False
        circuits = await client.fetch_circuit_status("claude")
        assert circuits == [ProviderCircuitStatus(provider_id=1, state="OPEN", open_until=10)]

    @pytest.mark.asyncio
    async def test_unavailable_host_returns_none_everywhere(self):
        client = HostClient()
        assert not client.available
        assert await client.fetch_logs_latest(10) is None
        assert await client.set_cli_proxy_enabled("claude", True) is None
        assert await client.fetch_circuit_status("claude") is None
        assert await client.reset_circuit_cli("claude") is None

    @pytest.mark.asyncio
    async def test_host_error_propagates(self):
        host = RecordingHost({"gateway_status": RuntimeError("gateway crashed")})
        with pytest.raises(HostCallError, match="gateway crashed"):
            await HostClient(host).fetch_gateway_status()
