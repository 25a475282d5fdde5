from sqlalchemy import JSON, DateTime, Enum
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

from core.clock import utcnow

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# All timestamps are stored timezone-aware
UTCDateTime = DateTime(timezone=True)


# ============================================================================
# ENUMS
# ============================================================================

class PlaceType(str, enum.Enum):
    """Kind of bathing place"""
    BEACH = "BEACH"
    POOL = "POOL"


class QualityStatus(str, enum.Enum):
    """Canonical water quality reading"""
    GOOD = "GOOD"
    BAD = "BAD"
    UNKNOWN = "UNKNOWN"


class FeedKind(str, enum.Enum):
    """Independently tracked open data files"""
    POOL_FACILITIES = "POOL_FACILITIES"
    POOL_LOCATIONS = "POOL_LOCATIONS"
    BEACH_LOCATIONS = "BEACH_LOCATIONS"
    POOL_SAMPLES = "POOL_SAMPLES"
    BEACH_SAMPLES = "BEACH_SAMPLES"

    @property
    def is_metadata(self) -> bool:
        return self in METADATA_FEED_KINDS


METADATA_FEED_KINDS = frozenset({
    FeedKind.POOL_FACILITIES,
    FeedKind.POOL_LOCATIONS,
    FeedKind.BEACH_LOCATIONS,
})

# Shared column types so each named enum is declared once
PlaceTypeColumn = Enum(PlaceType, name="place_type")
QualityStatusColumn = Enum(QualityStatus, name="quality_status")
FeedKindColumn = Enum(FeedKind, name="feed_kind")


def place_external_key(place_type: PlaceType, external_id: str) -> str:
    """Unique place key, e.g. ``BEACH:119``."""
    return f"{PlaceType(place_type).value}:{external_id}"


__all__ = [
    "Base",
    "JSONType",
    "UTCDateTime",
    "PlaceType",
    "QualityStatus",
    "FeedKind",
    "METADATA_FEED_KINDS",
    "PlaceTypeColumn",
    "QualityStatusColumn",
    "FeedKindColumn",
    "place_external_key",
    "utcnow",
]
