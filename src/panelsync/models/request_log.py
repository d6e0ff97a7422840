"""Request log summary rows as returned by the host."""
from typing import Optional

from pydantic import BaseModel, ConfigDict


class RequestLogSummary(BaseModel):
    """One entry in the bounded request-activity log.

    Only ``id``, ``created_at`` and ``created_at_ms`` matter to the
    synchronizer; everything else is carried through untouched, including
    fields the host adds later (kept as pydantic extras).
    """

    model_config = ConfigDict(extra="allow")

    id: int
    created_at: int  # unix seconds
    created_at_ms: Optional[int] = None  # authoritative for ordering when > 0

    trace_id: Optional[str] = None
    cli_key: Optional[str] = None
    method: Optional[str] = None
    path: Optional[str] = None
    requested_model: Optional[str] = None
    status: Optional[int] = None
    error_code: Optional[str] = None

    duration_ms: Optional[int] = None
    ttfb_ms: Optional[int] = None
    attempt_count: Optional[int] = None
    has_failover: Optional[bool] = None

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    cost_usd: Optional[float] = None
