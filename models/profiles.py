from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey
from models.base import Base, QualityStatus, QualityStatusColumn, JSONType, UTCDateTime, utcnow


class PoolFacility(Base):
    """A swimming facility (ujula) that owns one or more pools."""
    __tablename__ = "pool_facilities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)

    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    facility_type = Column(String(255), nullable=True)
    source_url = Column(Text, nullable=True)
    coordinate_x = Column(Float, nullable=True)
    coordinate_y = Column(Float, nullable=True)
    user_count = Column(Integer, nullable=True)

    # Owner
    owner_external_id = Column(String(64), nullable=True)
    owner_name = Column(String(255), nullable=True)
    owner_phone = Column(String(64), nullable=True)
    owner_email = Column(String(255), nullable=True)

    # Inspection
    last_inspection_at = Column(UTCDateTime, nullable=True)
    inspector = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class PoolProfile(Base):
    """Pool-specific metadata (basseinid.xml), one per POOL place."""
    __tablename__ = "pool_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    place_id = Column(Integer, ForeignKey("places.id", ondelete="CASCADE"), nullable=False, unique=True)
    facility_id = Column(Integer, ForeignKey("pool_facilities.id", ondelete="SET NULL"), nullable=True, index=True)

    pool_type = Column(String(255), nullable=True)
    load_text = Column(String(255), nullable=True)
    water_exchange_type = Column(String(255), nullable=True)
    area_m2 = Column(Float, nullable=True)
    volume_m3 = Column(Float, nullable=True)
    perimeter_m = Column(Float, nullable=True)
    min_depth_cm = Column(Float, nullable=True)
    max_depth_cm = Column(Float, nullable=True)

    last_inspection_at = Column(UTCDateTime, nullable=True)
    inspector = Column(String(255), nullable=True)
    assessment_raw = Column(Text, nullable=True)
    assessment_status = Column(QualityStatusColumn, nullable=False, default=QualityStatus.UNKNOWN)
    assessment_date = Column(UTCDateTime, nullable=True)
    inspector_notes = Column(Text, nullable=True)
    source_url = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class BeachProfile(Base):
    """Beach-specific metadata (supluskohad.xml), one per BEACH place."""
    __tablename__ = "beach_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    place_id = Column(Integer, ForeignKey("places.id", ondelete="CASCADE"), nullable=False, unique=True)

    group_id = Column(String(64), nullable=True)
    beach_type = Column(String(255), nullable=True)
    source_url = Column(Text, nullable=True)
    profile_url = Column(Text, nullable=True)
    water_body_name = Column(String(255), nullable=True)
    water_body_type = Column(String(255), nullable=True)
    visitor_count = Column(Integer, nullable=True)
    shoreline_length_m = Column(Float, nullable=True)
    monitoring_calendar_date = Column(UTCDateTime, nullable=True)
    last_inspection_at = Column(UTCDateTime, nullable=True)
    inspector = Column(String(255), nullable=True)

    latest_sample_at = Column(UTCDateTime, nullable=True)
    latest_quality_raw = Column(Text, nullable=True)
    latest_quality_class_raw = Column(Text, nullable=True)
    sampling_methods = Column(JSONType, nullable=False, default=list)
    sampling_protocol_number = Column(String(128), nullable=True)
    cover_letter_number = Column(String(128), nullable=True)
    sampler_role = Column(String(255), nullable=True)
    inspector_comments = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
