"""
PanelDataLayer — builds and owns every piece of the data layer.

Usage:
    layer = build_data_layer(invoker=shell.invoke)
    layer.start()                      # inside the running event loop
    shell.on_event(layer.events.emit)  # forward gateway:* events
    ...
    layer.set_foreground(False)        # window hidden: polling pauses
    layer.close()

Teardown cancels timers and listeners but never awaits or cancels host
calls already in flight; optimistic mutations still finish (and roll back
if needed) on their own.
"""
import logging
import time
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from panelsync.cache.store import CacheStore
from panelsync.config import Settings, get_settings
from panelsync.events.bridge import EventBridge
from panelsync.events.query_sync import GatewayQuerySync
from panelsync.host.client import HostClient
from panelsync.host.invoke import Invoker
from panelsync.mutations.circuits import CircuitResetter
from panelsync.mutations.cli_proxy import CliProxyToggle
from panelsync.mutations.sort_modes import ActiveSortModeSwitch
from panelsync.scheduler.expiry import ExpiryRefreshScheduler
from panelsync.scheduler.jobs import build_scheduler
from panelsync.sync.poller import RequestLogPoller
from panelsync.sync.request_logs import RequestLogSynchronizer

logger = logging.getLogger(__name__)


class PanelDataLayer:
    """One store, one scheduler, and the components sharing them."""

    def __init__(
        self,
        settings: Settings,
        client: HostClient,
        scheduler: AsyncIOScheduler,
        clock: Callable[[], float] = time.time,
        owns_scheduler: bool = False,
    ):
        self.settings = settings
        self.client = client
        self.scheduler = scheduler
        # a caller-supplied scheduler outlives the layer
        self.owns_scheduler = owns_scheduler
        self.store = CacheStore(clock=clock)
        self.events = EventBridge()
        self._foreground = True

        limit = settings.request_logs_limit
        self.request_logs = RequestLogSynchronizer(self.store, client)
        self.request_logs.register_list_query(limit)
        self.request_logs.register_poll_query(limit)
        self.poller = RequestLogPoller(
            self.store,
            scheduler,
            limit,
            settings.request_logs_poll_seconds,
            is_foreground=lambda: self._foreground,
        )

        self.cli_proxy = CliProxyToggle(self.store, client)
        self.cli_proxy.register_query()
        self.sort_modes = ActiveSortModeSwitch(self.store, client)
        self.sort_modes.register_query()
        self.circuits = CircuitResetter(self.store, client)

        self.circuit_expiry = ExpiryRefreshScheduler(
            self.store,
            scheduler,
            client,
            settings.watched_cli_keys,
            fallback_seconds=settings.circuit_refresh_fallback_seconds,
            epsilon_seconds=settings.circuit_refresh_epsilon_seconds,
            min_delay_seconds=settings.circuit_refresh_min_delay_seconds,
            clock=clock,
        )
        self.circuit_expiry.register_queries()

        self.query_sync = GatewayQuerySync(
            self.store,
            self.events,
            scheduler,
            circuit_throttle_seconds=settings.circuit_throttle_seconds,
            status_throttle_seconds=settings.status_throttle_seconds,
            request_throttle_seconds=settings.request_throttle_seconds,
        )
        self._started = False

    @property
    def foreground(self) -> bool:
        return self._foreground

    def set_foreground(self, foreground: bool) -> None:
        self._foreground = foreground

    def start(self) -> None:
        """Start background work. Must run on the event loop the store uses."""
        if self._started:
            return
        if not self.scheduler.running:
            self.scheduler.start()
        self.poller.start()
        self.circuit_expiry.start()
        self.query_sync.start()
        self._started = True
        logger.info("Panel data layer started (host available: %s)", self.client.available)

    def close(self) -> None:
        if not self._started:
            return
        self.query_sync.close()
        self.circuit_expiry.close()
        self.poller.stop()
        if self.owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Panel data layer stopped")


def build_data_layer(
    invoker: Optional[Invoker] = None,
    settings: Optional[Settings] = None,
    scheduler: Optional[AsyncIOScheduler] = None,
    clock: Callable[[], float] = time.time,
) -> PanelDataLayer:
    """
    Wire the data layer.

    Args:
        invoker: Host command callable; None = no host (everything unavailable).
        settings: Defaults to get_settings().
        scheduler: Defaults to build_scheduler(). A scheduler passed in is
                   started if needed but never shut down by close().
        clock: Unix-seconds clock used for expiry math.

    Returns:
        PanelDataLayer (not yet started).
    """
    return PanelDataLayer(
        settings=settings or get_settings(),
        client=HostClient(invoker),
        scheduler=scheduler or build_scheduler(),
        clock=clock,
        owns_scheduler=scheduler is None,
    )
