"""
Value objects exchanged between the status refresher and its collaborators.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from models.base import QualityStatus


class StatusSnapshot(BaseModel):
    """The latest known status of one place at a point in time"""
    model_config = ConfigDict(frozen=True)

    place_id: int
    status: QualityStatus
    sample_id: Optional[int] = None
    sampled_at: Optional[datetime] = None
    status_raw: Optional[str] = None


class StatusChangeEvent(BaseModel):
    """Emitted once when a place's latest status transitions"""
    model_config = ConfigDict(frozen=True)

    place_id: int
    previous_status: QualityStatus
    current_status: QualityStatus
    changed_at: datetime
