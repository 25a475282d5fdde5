"""
Pydantic schemas for records parsed out of the Terviseamet open data XML.

Each parser in ``ingestion.transformers.terviseamet_parsers`` returns a
flat list of one of these record types. They carry no database ids;
the loader maps them onto ORM rows by external key.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from models.base import PlaceType, QualityStatus


class ParsedCoordinate(BaseModel):
    """Projected L-EST97 coordinate exactly as published"""
    x: float
    y: float


class ParsedSamplingPoint(BaseModel):
    external_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    coordinate: Optional[ParsedCoordinate] = None
    location_details: Optional[str] = None
    water_source_type: Optional[str] = None
    point_type: Optional[str] = None
    point_class: Optional[str] = None


# ============================================================================
# Metadata feeds
# ============================================================================

class ParsedPoolFacilityReference(BaseModel):
    """A pool listed under a facility in ujulad.xml"""
    external_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    source_url: Optional[str] = None


class ParsedPoolFacility(BaseModel):
    external_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    type: Optional[str] = None
    source_url: Optional[str] = None
    coordinate: Optional[ParsedCoordinate] = None
    user_count: Optional[int] = None
    owner_external_id: Optional[str] = None
    owner_name: Optional[str] = None
    owner_phone: Optional[str] = None
    owner_email: Optional[str] = None
    last_inspection_at: Optional[datetime] = None
    inspector: Optional[str] = None
    pools: List[ParsedPoolFacilityReference] = Field(default_factory=list)


class ParsedPoolLocation(BaseModel):
    external_id: str = Field(..., min_length=1)
    facility_external_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    pool_type: Optional[str] = None
    load_text: Optional[str] = None
    water_exchange_type: Optional[str] = None
    area_m2: Optional[float] = None
    volume_m3: Optional[float] = None
    perimeter_m: Optional[float] = None
    min_depth_cm: Optional[float] = None
    max_depth_cm: Optional[float] = None
    last_inspection_at: Optional[datetime] = None
    inspector: Optional[str] = None
    assessment_raw: Optional[str] = None
    assessment_status: QualityStatus = QualityStatus.UNKNOWN
    assessment_date: Optional[datetime] = None
    inspector_notes: Optional[str] = None
    sampling_points: List[ParsedSamplingPoint] = Field(default_factory=list)


class ParsedBeachLocation(BaseModel):
    external_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    group_id: Optional[str] = None
    beach_type: Optional[str] = None
    source_url: Optional[str] = None
    profile_url: Optional[str] = None
    address: Optional[str] = None
    coordinate: Optional[ParsedCoordinate] = None
    water_body_name: Optional[str] = None
    water_body_type: Optional[str] = None
    visitor_count: Optional[int] = None
    shoreline_length_m: Optional[float] = None
    monitoring_calendar_date: Optional[datetime] = None
    last_inspection_at: Optional[datetime] = None
    inspector: Optional[str] = None
    latest_sample_at: Optional[datetime] = None
    latest_quality_raw: Optional[str] = None
    latest_quality_class_raw: Optional[str] = None
    sampling_methods: List[str] = Field(default_factory=list)
    sampling_protocol_number: Optional[str] = None
    cover_letter_number: Optional[str] = None
    sampler_role: Optional[str] = None
    inspector_comments: Optional[str] = None
    sampling_points: List[ParsedSamplingPoint] = Field(default_factory=list)


# ============================================================================
# Sample feeds
# ============================================================================

class ParsedWaterQualityIndicator(BaseModel):
    order: int = Field(..., ge=0)
    external_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    value_raw: Optional[str] = None
    value_number: Optional[float] = None
    unit: Optional[str] = None
    assessment_raw: Optional[str] = None
    assessment_status: QualityStatus = QualityStatus.UNKNOWN


class ParsedWaterQualityProtocol(BaseModel):
    order: int = Field(..., ge=0)
    cover_letter_number: Optional[str] = None
    protocol_number: Optional[str] = None
    assessment_raw: Optional[str] = None
    assessment_status: QualityStatus = QualityStatus.UNKNOWN
    indicators: List[ParsedWaterQualityIndicator] = Field(default_factory=list)


class ParsedWaterQualitySample(BaseModel):
    """
    One <proovivott> row from a pool or beach sample feed.

    ``overall_status`` is the worst of the protocol statuses and
    ``overall_assessment_raw`` the first non-empty protocol assessment.
    """
    external_id: str = Field(..., min_length=1)
    place_external_id: str = Field(..., min_length=1)
    place_name: str = Field(..., min_length=1)
    place_type: PlaceType
    sampled_at: datetime
    source_year: int
    source_url: str
    water_type: Optional[str] = None
    sample_type: Optional[str] = None
    sampler_name: Optional[str] = None
    sampler_role: Optional[str] = None
    sampler_certificate_number: Optional[str] = None
    sampling_purpose: Optional[str] = None
    sampling_method: Optional[str] = None
    sampling_protocol_number: Optional[str] = None
    sampling_point_external_id: Optional[str] = None
    sampling_point_name: Optional[str] = None
    protocols: List[ParsedWaterQualityProtocol] = Field(default_factory=list)
    overall_assessment_raw: Optional[str] = None
    overall_status: QualityStatus = QualityStatus.UNKNOWN
