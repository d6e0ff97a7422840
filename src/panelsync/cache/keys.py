"""Query key factories, grouped by host namespace.

Prefix keys (``*_all``/``*_lists``) are what invalidate()/cancel() take;
leaf keys identify a single cache entry.
"""
from typing import Optional

from panelsync.cache.store import QueryKey

REQUEST_LOGS_ALL: QueryKey = ("requestLogs",)
GATEWAY_ALL: QueryKey = ("gateway",)
CLI_PROXY_ALL: QueryKey = ("cliProxy",)
SORT_MODES_ALL: QueryKey = ("sortModes",)
USAGE_ALL: QueryKey = ("usage",)


def request_logs_lists() -> QueryKey:
    return REQUEST_LOGS_ALL + ("list",)


def request_logs_list_all(limit: Optional[int]) -> QueryKey:
    return REQUEST_LOGS_ALL + ("list", "all", limit)


def request_logs_poll_after_id_all(limit: Optional[int]) -> QueryKey:
    return REQUEST_LOGS_ALL + ("pollAfterIdAll", limit)


def gateway_status() -> QueryKey:
    return GATEWAY_ALL + ("status",)


def gateway_circuits() -> QueryKey:
    return GATEWAY_ALL + ("circuitStatus",)


def gateway_circuit_status(cli_key: str) -> QueryKey:
    return GATEWAY_ALL + ("circuitStatus", cli_key)


def cli_proxy_status_all() -> QueryKey:
    return CLI_PROXY_ALL + ("statusAll",)


def sort_modes_active_list() -> QueryKey:
    return SORT_MODES_ALL + ("activeList",)
