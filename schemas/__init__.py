"""
Pydantic schemas for data validation and serialization.

Schemas:
    terviseamet: Typed records produced by the open data XML parsers
    status: Latest-status snapshots and change events
    api: Sync summary and health check responses

Usage:
    from schemas.terviseamet import ParsedWaterQualitySample
    from schemas.api import SyncSummary

Example:
    summary = SyncSummary(feeds_checked=7, feeds_unchanged=7)
    summary.model_dump(by_alias=True)["feedsChecked"]  # 7
"""

__all__ = [
    "ParsedCoordinate",
    "ParsedSamplingPoint",
    "ParsedPoolFacility",
    "ParsedPoolLocation",
    "ParsedBeachLocation",
    "ParsedWaterQualitySample",
    "StatusSnapshot",
    "StatusChangeEvent",
    "SyncSummary",
    "HealthCheckResponse",
]
