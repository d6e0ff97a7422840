"""
Host command invocation: the one boundary to the privileged backend.

The desktop shell hands us an ``invoker(cmd, args)`` callable. It may be a
plain function (e.g. a blocking IPC bridge) or an ``async def``; blocking
invokers run in the default thread-pool executor so they never stall the
event loop.

Three outcomes per call, which callers must keep apart:
  - a payload                      → returned as-is
  - None because no host is wired  → "unavailable", returned as None
  - any failure                    → logged, raised as HostCallError
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

Invoker = Callable[[str, Optional[Dict[str, Any]]], Union[Any, Awaitable[Any]]]


# ── Exceptions ────────────────────────────────────────────────────────────────

class HostCallError(RuntimeError):
    """Raised when a host command fails (transport, validation or backend).

    Attributes:
        cmd: Host command name.
        cmd_args: Arguments the command was invoked with (``args`` is taken
            by BaseException).
    """

    def __init__(self, cmd: str, message: str, args: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.cmd = cmd
        self.cmd_args = args or {}


class NullResultError(HostCallError):
    """Raised when a present host answers None to a command that must return data."""


# ── Main class ────────────────────────────────────────────────────────────────

class HostInvoker:
    """
    Thin async wrapper over the host-provided invoker.

    Usage:
        host = HostInvoker(bridge.invoke)
        rows = await host.call("Load circuit status", "gateway_circuit_status",
                               {"cliKey": "claude"})
    """

    def __init__(self, invoker: Optional[Invoker] = None):
        """
        Args:
            invoker: Host command callable. None means no host is available
                     (e.g. running outside the desktop shell); every call then
                     resolves to None.
        """
        self._invoker = invoker

    @property
    def available(self) -> bool:
        return self._invoker is not None

    async def call(
        self,
        title: str,
        cmd: str,
        args: Optional[Dict[str, Any]] = None,
        *,
        allow_null: bool = False,
    ) -> Any:
        """
        Invoke ``cmd`` on the host.

        Args:
            title: Human-readable operation name used in error logs.
            cmd: Host command name.
            args: Argument record (scalars, lists, dicts).
            allow_null: Accept a None payload instead of raising.

        Returns:
            The host payload, or None when no host is wired.

        Raises:
            HostCallError: on any invoker failure.
            NullResultError: if the host answered None and allow_null is False.
        """
        if self._invoker is None:
            return None

        try:
            result = await self._run(cmd, args)
        except Exception as exc:
            logger.error("%s: cmd=%s args=%s error=%s", title, cmd, args, exc)
            raise HostCallError(cmd, str(exc), args) from exc

        if result is None and not allow_null:
            logger.error("%s: cmd=%s args=%s error=IPC_NULL_RESULT", title, cmd, args)
            raise NullResultError(cmd, f"IPC_NULL_RESULT: {cmd}", args)
        return result

    async def _run(self, cmd: str, args: Optional[Dict[str, Any]]) -> Any:
        if inspect.iscoroutinefunction(self._invoker):
            return await self._invoker(cmd, args)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, lambda: self._invoker(cmd, args))
        if inspect.iscoroutine(result):
            # callable objects with an async __call__
            result = await result
        return result
