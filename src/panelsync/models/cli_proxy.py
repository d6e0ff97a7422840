"""CLI proxy enablement rows."""
from typing import Optional

from pydantic import BaseModel


class CliProxyStatus(BaseModel):
    cli_key: str
    enabled: bool
    base_origin: Optional[str] = None


class CliProxyResult(BaseModel):
    """Confirmed state returned by the host after toggling a CLI proxy."""

    trace_id: Optional[str] = None
    cli_key: str
    enabled: bool
    ok: bool
    error_code: Optional[str] = None
    message: str = ""
    base_origin: Optional[str] = None
