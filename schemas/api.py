"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime

from core.clock import utcnow
from models.base import FeedKind


# ============================================================================
# Sync Schemas
# ============================================================================

class SyncSummary(BaseModel):
    """
    Counters for one sync run.

    Every checked feed lands in exactly one bucket, so
    ``feeds_checked == feeds_changed + feeds_unchanged + feeds_not_found
    + feeds_skipped_by_interval + feeds_errored``.
    Serialized in camelCase (``feedsChecked`` ...).
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    feeds_checked: int = Field(0, ge=0)
    feeds_changed: int = Field(0, ge=0)
    feeds_unchanged: int = Field(0, ge=0)
    feeds_not_found: int = Field(0, ge=0)
    feeds_skipped_by_interval: int = Field(0, ge=0)
    feeds_errored: int = Field(0, ge=0)
    metadata_rows_processed: int = Field(0, ge=0)
    sample_rows_processed: int = Field(0, ge=0)
    sample_rows_inserted: int = Field(0, ge=0)
    status_changes: int = Field(0, ge=0)

    def is_balanced(self) -> bool:
        return self.feeds_checked == (
            self.feeds_changed
            + self.feeds_unchanged
            + self.feeds_not_found
            + self.feeds_skipped_by_interval
            + self.feeds_errored
        )


class ErrorResponse(BaseModel):
    detail: str


# ============================================================================
# Health Check Schemas
# ============================================================================

class FeedStateInfo(BaseModel):
    """Conditional-fetch state of one feed for the health check"""
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    file_kind: FeedKind
    year: int
    url: str
    last_status_code: Optional[int] = None
    last_checked_at: Optional[datetime] = None
    last_changed_at: Optional[datetime] = None
    last_error: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=utcnow)
    database_connected: bool
    feeds: List[FeedStateInfo] = Field(default_factory=list)
    total_feeds: int = 0
    failing_feeds: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.failing_feeds > 0:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2026-06-15T10:30:00Z",
                "database_connected": True,
                "total_feeds": 7,
                "failing_feeds": 0,
                "feeds": [
                    {
                        "file_kind": "BEACH_SAMPLES",
                        "year": 2026,
                        "url": "https://vtiav.sm.ee/index.php/opendata/supluskoha_veeproovid_2026.xml",
                        "last_status_code": 200,
                        "last_checked_at": "2026-06-15T10:00:00Z",
                        "last_changed_at": "2026-06-15T10:00:00Z",
                        "last_error": None
                    }
                ]
            }
        }
    )
