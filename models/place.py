from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey, UniqueConstraint
from models.base import Base, PlaceTypeColumn, UTCDateTime, utcnow


class Place(Base):
    """
    A beach or pool as published by Terviseamet.

    Keyed by ``external_key`` (``TYPE:externalId``). Rows are created on
    first sight and updated on every later import; the pipeline never
    deletes them.
    """
    __tablename__ = "places"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Source identification
    external_id = Column(String(64), nullable=False)
    external_key = Column(String(96), nullable=False, unique=True, index=True)
    type = Column(PlaceTypeColumn, nullable=False, index=True)

    # Localized content
    name_et = Column(String(255), nullable=False)
    address_et = Column(Text, nullable=True)
    municipality = Column(String(128), nullable=False, default="unknown", index=True)

    # L-EST97 projected coordinate, as published
    coordinate_x = Column(Float, nullable=True)
    coordinate_y = Column(Float, nullable=True)

    source_url = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SamplingPoint(Base):
    """A sampling spot within a place, keyed by (place_id, external_id)."""
    __tablename__ = "sampling_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    place_id = Column(Integer, ForeignKey("places.id", ondelete="CASCADE"), nullable=False, index=True)
    external_id = Column(String(128), nullable=False)

    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    coordinate_x = Column(Float, nullable=True)
    coordinate_y = Column(Float, nullable=True)
    location_details = Column(Text, nullable=True)
    water_source_type = Column(String(255), nullable=True)
    point_type = Column(String(255), nullable=True)
    point_class = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("place_id", "external_id", name="uq_sampling_point_place_external"),
    )
