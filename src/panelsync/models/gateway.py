"""Gateway status and per-provider circuit breaker rows."""
from typing import Optional

from pydantic import BaseModel


class GatewayStatus(BaseModel):
    running: bool
    port: Optional[int] = None
    base_url: Optional[str] = None
    listen_addr: Optional[str] = None


class ProviderCircuitStatus(BaseModel):
    """Circuit breaker snapshot for one provider of one CLI.

    ``open_until`` / ``cooldown_until`` are unix seconds after which the
    row's meaning changes (circuit half-opens, cooldown ends).
    """

    provider_id: int
    state: str  # "CLOSED", "OPEN", "HALF_OPEN"
    failure_count: int = 0
    failure_threshold: int = 0
    open_until: Optional[int] = None
    cooldown_until: Optional[int] = None
