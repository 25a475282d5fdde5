from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from models.base import Base, QualityStatus, QualityStatusColumn, UTCDateTime, utcnow


class WaterQualitySample(Base):
    """
    One laboratory visit to a place.

    Keyed by (place_id, external_id). The overall status is the worst of
    the protocol statuses and is recomputed on every import.
    """
    __tablename__ = "water_quality_samples"

    id = Column(Integer, primary_key=True, autoincrement=True)
    place_id = Column(Integer, ForeignKey("places.id", ondelete="CASCADE"), nullable=False)
    sampling_point_id = Column(Integer, ForeignKey("sampling_points.id", ondelete="SET NULL"), nullable=True)
    external_id = Column(String(64), nullable=False)

    sampled_at = Column(UTCDateTime, nullable=False)
    status = Column(QualityStatusColumn, nullable=False, default=QualityStatus.UNKNOWN)
    status_raw = Column(Text, nullable=True)

    # Provenance
    source_year = Column(Integer, nullable=False)
    source_url = Column(Text, nullable=False)

    water_type = Column(String(255), nullable=True)
    sample_type = Column(String(255), nullable=True)
    sampler_name = Column(String(255), nullable=True)
    sampler_role = Column(String(255), nullable=True)
    sampler_certificate_number = Column(String(128), nullable=True)
    sampling_purpose = Column(String(255), nullable=True)
    sampling_method = Column(Text, nullable=True)
    sampling_protocol_number = Column(String(128), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("place_id", "external_id", name="uq_sample_place_external"),
        Index("idx_sample_place_sampled_at", "place_id", "sampled_at"),
    )


class WaterQualityProtocol(Base):
    """A lab test protocol within a sample. Replaced wholesale on re-import."""
    __tablename__ = "water_quality_protocols"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sample_id = Column(
        Integer, ForeignKey("water_quality_samples.id", ondelete="CASCADE"), nullable=False, index=True
    )
    protocol_order = Column(Integer, nullable=False)

    cover_letter_number = Column(String(128), nullable=True)
    protocol_number = Column(String(128), nullable=True)
    assessment_raw = Column(Text, nullable=True)
    status = Column(QualityStatusColumn, nullable=False, default=QualityStatus.UNKNOWN)

    indicators = relationship(
        "WaterQualityIndicator",
        cascade="all, delete-orphan",
        order_by="WaterQualityIndicator.indicator_order",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("sample_id", "protocol_order", name="uq_protocol_sample_order"),
    )


class WaterQualityIndicator(Base):
    """One measured indicator (e.g. E. coli) inside a protocol."""
    __tablename__ = "water_quality_indicators"

    id = Column(Integer, primary_key=True, autoincrement=True)
    protocol_id = Column(
        Integer, ForeignKey("water_quality_protocols.id", ondelete="CASCADE"), nullable=False, index=True
    )
    indicator_order = Column(Integer, nullable=False)

    external_id = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    value_raw = Column(String(255), nullable=True)
    value_number = Column(Float, nullable=True)
    unit = Column(String(64), nullable=True)
    assessment_raw = Column(Text, nullable=True)
    status = Column(QualityStatusColumn, nullable=False, default=QualityStatus.UNKNOWN)
