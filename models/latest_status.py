from sqlalchemy import Column, Integer, Text, ForeignKey
from models.base import Base, QualityStatusColumn, UTCDateTime, utcnow


class PlaceLatestStatus(Base):
    """
    Materialized current status per place.

    Rewritten after every run that touched the place's samples.
    ``changed_at`` only moves when the status actually transitions.
    """
    __tablename__ = "place_latest_statuses"

    place_id = Column(Integer, ForeignKey("places.id", ondelete="CASCADE"), primary_key=True)
    sample_id = Column(Integer, ForeignKey("water_quality_samples.id", ondelete="SET NULL"), nullable=True)

    sampled_at = Column(UTCDateTime, nullable=True)
    status = Column(QualityStatusColumn, nullable=False)
    status_raw = Column(Text, nullable=True)
    status_reason_et = Column(Text, nullable=True)
    status_reason_en = Column(Text, nullable=True)
    source_url = Column(Text, nullable=True)

    changed_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
