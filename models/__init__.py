"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, shared enums (PlaceType, QualityStatus, FeedKind)
    place: Places and their sampling points
    profiles: Pool facilities and type-specific pool/beach profiles
    sample: Water quality samples with protocols and indicators
    latest_status: Materialized current status per place
    source_sync_state: Conditional-fetch state per feed instance
    notification: Per-user status alert subscriptions

Usage:
    from models import Place, WaterQualitySample, SourceSyncState
    from models.base import PlaceType, QualityStatus

Relationships:
    - Place → SamplingPoint (one-to-many)
    - Place → WaterQualitySample → WaterQualityProtocol → WaterQualityIndicator
    - Place → PlaceLatestStatus (one-to-one)
    - PoolFacility → PoolProfile (one-to-many)
"""

from models.base import Base, PlaceType, QualityStatus, FeedKind
from models.place import Place, SamplingPoint
from models.profiles import PoolFacility, PoolProfile, BeachProfile
from models.sample import WaterQualitySample, WaterQualityProtocol, WaterQualityIndicator
from models.latest_status import PlaceLatestStatus
from models.source_sync_state import SourceSyncState
from models.notification import NotificationPreference

__all__ = [
    "Base",
    "PlaceType",
    "QualityStatus",
    "FeedKind",
    "Place",
    "SamplingPoint",
    "PoolFacility",
    "PoolProfile",
    "BeachProfile",
    "WaterQualitySample",
    "WaterQualityProtocol",
    "WaterQualityIndicator",
    "PlaceLatestStatus",
    "SourceSyncState",
    "NotificationPreference",
]
