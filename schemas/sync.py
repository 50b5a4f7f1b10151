"""
Pydantic schema describing the outcome of one sync cycle
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

from models.base import SyncStatus


class SyncResult(BaseModel):
    """Outcome of a single cycle for one history table"""

    source_name: str
    status: SyncStatus = SyncStatus.PENDING

    # Checkpoint movement
    cursor_before: Optional[int] = None
    cursor_after: Optional[int] = None
    rolled_back: bool = False

    # Statistics
    records_extracted: int = 0
    records_written: int = 0
    batches_flushed: int = 0
    duration_seconds: float = 0.0

    # Error tracking
    error_type: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SyncStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
