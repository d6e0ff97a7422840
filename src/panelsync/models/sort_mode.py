"""Active sort-mode rows (one per CLI)."""
from typing import Optional

from pydantic import BaseModel


class SortModeActiveRow(BaseModel):
    cli_key: str
    mode_id: Optional[int] = None  # None = default provider order
    updated_at: int = 0
