"""
Load parsed Terviseamet records into the database with upsert logic (idempotency)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
import hashlib
import logging
import re
import unicodedata

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import ensure_utc, utcnow
from core.exceptions import PersistenceError, UpsertError
from ingestion.transformers.quality import infer_municipality
from models.base import PlaceType, place_external_key
from models.place import Place, SamplingPoint
from models.profiles import BeachProfile, PoolFacility, PoolProfile
from models.sample import WaterQualityIndicator, WaterQualityProtocol, WaterQualitySample
from schemas.terviseamet import (
    ParsedBeachLocation,
    ParsedCoordinate,
    ParsedPoolFacility,
    ParsedPoolLocation,
    ParsedSamplingPoint,
    ParsedWaterQualitySample,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def sampling_point_fallback_id(name: str) -> str:
    """
    Deterministic id for a sampling point published without one.

    The name is NFKC-normalized, lower-cased and whitespace-collapsed
    before hashing so cosmetic differences collapse onto one row.
    """
    normalized = _WHITESPACE.sub(" ", unicodedata.normalize("NFKC", name).strip().lower())
    return "name-" + hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:16]


def _coordinate_values(coordinate: Optional[ParsedCoordinate]) -> Dict[str, Optional[float]]:
    return {
        "coordinate_x": coordinate.x if coordinate else None,
        "coordinate_y": coordinate.y if coordinate else None,
    }


@dataclass
class SampleImportResult:
    processed: int = 0
    inserted: int = 0
    place_ids: Set[int] = field(default_factory=set)


class WaterQualityLoader:
    """
    Map parsed records onto places, profiles, sampling points and samples.

    Ensures:
    - Every entity is upserted by its external key in one statement
    - Protocols and indicators of a sample are replaced, never merged
    - Each feed import is committed as one transaction

    The place and sampling point caches live on the instance; build a
    new loader (or call ``reset``) for every sync run.
    """

    def __init__(self, db_session: AsyncSession, now: Optional[datetime] = None):
        self.db = db_session
        self.now = now or utcnow()
        self._place_ids: Dict[str, int] = {}
        self._sampling_point_ids: Dict[Tuple[int, str], int] = {}
        self._facility_ids: Dict[str, int] = {}
        self._seen_samples: Set[Tuple[int, str]] = set()

    def reset(self) -> None:
        self._place_ids.clear()
        self._sampling_point_ids.clear()
        self._facility_ids.clear()
        self._seen_samples.clear()

    # ------------------------------------------------------------------
    # Feed imports
    # ------------------------------------------------------------------

    async def import_pool_facilities(self, facilities: List[ParsedPoolFacility]) -> int:
        async with self._feed_transaction("pool_facilities"):
            for facility in facilities:
                facility_id = await self._upsert_facility(facility)
                for pool in facility.pools:
                    place_id = await self.upsert_place(
                        PlaceType.POOL,
                        pool.external_id,
                        pool.name,
                        address=facility.address,
                        coordinate=facility.coordinate,
                        source_url=pool.source_url,
                    )
                    await self._upsert(
                        PoolProfile,
                        {
                            "external_id": pool.external_id,
                            "place_id": place_id,
                            "facility_id": facility_id,
                            "source_url": pool.source_url,
                        },
                        conflict=["external_id"],
                        update=["place_id", "facility_id"] + (["source_url"] if pool.source_url else []),
                    )
        logger.info(f"Imported {len(facilities)} pool facilities")
        return len(facilities)

    async def import_pool_locations(self, locations: List[ParsedPoolLocation]) -> int:
        async with self._feed_transaction("pool_locations"):
            for location in locations:
                place_id = await self.upsert_place(PlaceType.POOL, location.external_id, location.name)
                facility_id = await self._facility_id(location.facility_external_id)

                values = {
                    "external_id": location.external_id,
                    "place_id": place_id,
                    "facility_id": facility_id,
                    "pool_type": location.pool_type,
                    "load_text": location.load_text,
                    "water_exchange_type": location.water_exchange_type,
                    "area_m2": location.area_m2,
                    "volume_m3": location.volume_m3,
                    "perimeter_m": location.perimeter_m,
                    "min_depth_cm": location.min_depth_cm,
                    "max_depth_cm": location.max_depth_cm,
                    "last_inspection_at": location.last_inspection_at,
                    "inspector": location.inspector,
                    "assessment_raw": location.assessment_raw,
                    "assessment_status": location.assessment_status,
                    "assessment_date": location.assessment_date,
                    "inspector_notes": location.inspector_notes,
                }
                update = [k for k in values if k not in ("external_id", "facility_id")]
                if facility_id is not None:
                    update.append("facility_id")
                await self._upsert(PoolProfile, values, conflict=["external_id"], update=update)

                for point in location.sampling_points:
                    await self.upsert_sampling_point(place_id, point)
        logger.info(f"Imported {len(locations)} pool locations")
        return len(locations)

    async def import_beach_locations(self, locations: List[ParsedBeachLocation]) -> int:
        async with self._feed_transaction("beach_locations"):
            for location in locations:
                place_id = await self.upsert_place(
                    PlaceType.BEACH,
                    location.external_id,
                    location.name,
                    address=location.address,
                    coordinate=location.coordinate,
                    source_url=location.source_url,
                )
                values = {
                    "external_id": location.external_id,
                    "place_id": place_id,
                    "group_id": location.group_id,
                    "beach_type": location.beach_type,
                    "source_url": location.source_url,
                    "profile_url": location.profile_url,
                    "water_body_name": location.water_body_name,
                    "water_body_type": location.water_body_type,
                    "visitor_count": location.visitor_count,
                    "shoreline_length_m": location.shoreline_length_m,
                    "monitoring_calendar_date": location.monitoring_calendar_date,
                    "last_inspection_at": location.last_inspection_at,
                    "inspector": location.inspector,
                    "latest_sample_at": location.latest_sample_at,
                    "latest_quality_raw": location.latest_quality_raw,
                    "latest_quality_class_raw": location.latest_quality_class_raw,
                    "sampling_methods": list(location.sampling_methods),
                    "sampling_protocol_number": location.sampling_protocol_number,
                    "cover_letter_number": location.cover_letter_number,
                    "sampler_role": location.sampler_role,
                    "inspector_comments": location.inspector_comments,
                }
                await self._upsert(
                    BeachProfile,
                    values,
                    conflict=["external_id"],
                    update=[k for k in values if k != "external_id"],
                )
                for point in location.sampling_points:
                    await self.upsert_sampling_point(place_id, point)
        logger.info(f"Imported {len(locations)} beach locations")
        return len(locations)

    async def import_samples(self, samples: List[ParsedWaterQualitySample]) -> SampleImportResult:
        result = SampleImportResult()
        async with self._feed_transaction("samples"):
            for sample in samples:
                place_id = await self.ensure_place(sample.place_type, sample.place_external_id, sample.place_name)
                sampling_point_id = await self._sample_sampling_point(place_id, sample)

                inserted = await self._upsert_sample(place_id, sampling_point_id, sample)
                result.processed += 1
                result.place_ids.add(place_id)
                if inserted:
                    result.inserted += 1

        logger.info(f"Imported {result.processed} samples ({result.inserted} new)")
        return result

    # ------------------------------------------------------------------
    # Places and sampling points
    # ------------------------------------------------------------------

    async def upsert_place(
        self,
        place_type: PlaceType,
        external_id: str,
        name: str,
        address: Optional[str] = None,
        coordinate: Optional[ParsedCoordinate] = None,
        source_url: Optional[str] = None,
    ) -> int:
        """
        Write a place from a metadata feed and refresh the cache.

        Fields the feed does not carry (``None``) keep their stored value.
        """
        key = place_external_key(place_type, external_id)
        values = {
            "external_id": external_id,
            "external_key": key,
            "type": place_type,
            "name_et": name,
            "address_et": address,
            "municipality": infer_municipality(address),
            "source_url": source_url,
            **_coordinate_values(coordinate),
        }
        update = ["name_et"]
        if address:
            update += ["address_et", "municipality"]
        if coordinate:
            update += ["coordinate_x", "coordinate_y"]
        if source_url:
            update.append("source_url")

        row = await self._upsert(Place, values, conflict=["external_key"], update=update)
        self._place_ids[key] = row.id
        return row.id

    async def ensure_place(self, place_type: PlaceType, external_id: str, name: str) -> int:
        """
        Resolve a place referenced by a sample, creating it on first sight.

        Served from the per-run cache when possible; an existing place is
        never modified.
        """
        key = place_external_key(place_type, external_id)
        cached = self._place_ids.get(key)
        if cached is not None:
            return cached

        row = await self._upsert(
            Place,
            {
                "external_id": external_id,
                "external_key": key,
                "type": place_type,
                "name_et": name,
                "municipality": infer_municipality(None),
            },
            conflict=["external_key"],
            update=["external_id"],
        )
        self._place_ids[key] = row.id
        return row.id

    async def upsert_sampling_point(self, place_id: int, point: ParsedSamplingPoint) -> int:
        values = {
            "place_id": place_id,
            "external_id": point.external_id,
            "name": point.name,
            "address": point.address,
            "location_details": point.location_details,
            "water_source_type": point.water_source_type,
            "point_type": point.point_type,
            "point_class": point.point_class,
            **_coordinate_values(point.coordinate),
        }
        update = ["name"] + [
            k for k, v in values.items() if v is not None and k not in ("place_id", "external_id", "name")
        ]
        row = await self._upsert(SamplingPoint, values, conflict=["place_id", "external_id"], update=update)
        self._sampling_point_ids[(place_id, point.external_id)] = row.id
        return row.id

    async def _sample_sampling_point(self, place_id: int, sample: ParsedWaterQualitySample) -> Optional[int]:
        name = sample.sampling_point_name
        external_id = sample.sampling_point_external_id
        if not external_id:
            if not name:
                return None
            external_id = sampling_point_fallback_id(name)

        cached = self._sampling_point_ids.get((place_id, external_id))
        if cached is not None:
            return cached

        values = {"place_id": place_id, "external_id": external_id, "name": name or external_id}
        row = await self._upsert(
            SamplingPoint,
            values,
            conflict=["place_id", "external_id"],
            update=["name"] if name else ["external_id"],
        )
        self._sampling_point_ids[(place_id, external_id)] = row.id
        return row.id

    async def _facility_id(self, external_id: Optional[str]) -> Optional[int]:
        if not external_id:
            return None
        if external_id in self._facility_ids:
            return self._facility_ids[external_id]
        result = await self.db.execute(select(PoolFacility.id).where(PoolFacility.external_id == external_id))
        facility_id = result.scalar_one_or_none()
        if facility_id is not None:
            self._facility_ids[external_id] = facility_id
        return facility_id

    async def _upsert_facility(self, facility: ParsedPoolFacility) -> int:
        values = {
            "external_id": facility.external_id,
            "name": facility.name,
            "address": facility.address,
            "facility_type": facility.type,
            "source_url": facility.source_url,
            "user_count": facility.user_count,
            "owner_external_id": facility.owner_external_id,
            "owner_name": facility.owner_name,
            "owner_phone": facility.owner_phone,
            "owner_email": facility.owner_email,
            "last_inspection_at": facility.last_inspection_at,
            "inspector": facility.inspector,
            **_coordinate_values(facility.coordinate),
        }
        row = await self._upsert(
            PoolFacility, values, conflict=["external_id"], update=[k for k in values if k != "external_id"]
        )
        self._facility_ids[facility.external_id] = row.id
        return row.id

    # ------------------------------------------------------------------
    # Samples
    # ------------------------------------------------------------------

    async def _upsert_sample(
        self,
        place_id: int,
        sampling_point_id: Optional[int],
        sample: ParsedWaterQualitySample,
    ) -> bool:
        """Upsert one sample and rebuild its protocols. Returns True when the row is new."""
        values = {
            "place_id": place_id,
            "sampling_point_id": sampling_point_id,
            "external_id": sample.external_id,
            "sampled_at": sample.sampled_at,
            "status": sample.overall_status,
            "status_raw": sample.overall_assessment_raw,
            "source_year": sample.source_year,
            "source_url": sample.source_url,
            "water_type": sample.water_type,
            "sample_type": sample.sample_type,
            "sampler_name": sample.sampler_name,
            "sampler_role": sample.sampler_role,
            "sampler_certificate_number": sample.sampler_certificate_number,
            "sampling_purpose": sample.sampling_purpose,
            "sampling_method": sample.sampling_method,
            "sampling_protocol_number": sample.sampling_protocol_number,
        }
        row = await self._upsert(
            WaterQualitySample,
            values,
            conflict=["place_id", "external_id"],
            update=[k for k in values if k not in ("place_id", "external_id")],
        )

        sample_key = (place_id, sample.external_id)
        inserted = ensure_utc(row.created_at) == self.now and sample_key not in self._seen_samples
        self._seen_samples.add(sample_key)

        await self._replace_protocols(row.id, sample)
        return inserted

    async def _replace_protocols(self, sample_id: int, sample: ParsedWaterQualitySample) -> None:
        protocol_ids = select(WaterQualityProtocol.id).where(WaterQualityProtocol.sample_id == sample_id)
        await self.db.execute(
            delete(WaterQualityIndicator)
            .where(WaterQualityIndicator.protocol_id.in_(protocol_ids))
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(
            delete(WaterQualityProtocol)
            .where(WaterQualityProtocol.sample_id == sample_id)
            .execution_options(synchronize_session="fetch")
        )

        for protocol in sample.protocols:
            self.db.add(
                WaterQualityProtocol(
                    sample_id=sample_id,
                    protocol_order=protocol.order,
                    cover_letter_number=protocol.cover_letter_number,
                    protocol_number=protocol.protocol_number,
                    assessment_raw=protocol.assessment_raw,
                    status=protocol.assessment_status,
                    indicators=[
                        WaterQualityIndicator(
                            indicator_order=indicator.order,
                            external_id=indicator.external_id,
                            name=indicator.name,
                            value_raw=indicator.value_raw,
                            value_number=indicator.value_number,
                            unit=indicator.unit,
                            assessment_raw=indicator.assessment_raw,
                            status=indicator.assessment_status,
                        )
                        for indicator in protocol.indicators
                    ],
                )
            )
        await self.db.flush()

    # ------------------------------------------------------------------
    # Statement helpers
    # ------------------------------------------------------------------

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise PersistenceError(f"Unsupported database dialect: {dialect}", context={"dialect": dialect})

    async def _upsert(self, model, values: Dict[str, Any], conflict: List[str], update: Iterable[str]):
        """
        INSERT ... ON CONFLICT (conflict) DO UPDATE SET (update) RETURNING id, created_at.

        ``created_at`` is only written on insert, so comparing it with
        ``self.now`` tells a new row from an updated one.
        """
        stmt = self._insert(model).values(**values, created_at=self.now, updated_at=self.now)
        set_ = {column: stmt.excluded[column] for column in update}
        set_["updated_at"] = stmt.excluded.updated_at
        stmt = stmt.on_conflict_do_update(index_elements=conflict, set_=set_)
        stmt = stmt.returning(model.id, model.created_at)

        try:
            result = await self.db.execute(stmt)
            return result.one()
        except SQLAlchemyError as e:
            raise UpsertError(
                f"Upsert into {model.__tablename__} failed",
                context={
                    "table_name": model.__tablename__,
                    "conflict_fields": conflict,
                    "key": {k: values.get(k) for k in conflict},
                },
                original_exception=e,
            )

    def _feed_transaction(self, feed: str) -> "_FeedTransaction":
        return _FeedTransaction(self, feed)


class _FeedTransaction:
    """Commit on success; on failure roll back, drop caches and raise PersistenceError."""

    def __init__(self, loader: WaterQualityLoader, feed: str):
        self.loader = loader
        self.feed = feed

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        db = self.loader.db
        if exc is None:
            try:
                await db.commit()
                return False
            except SQLAlchemyError as e:
                exc = e

        await db.rollback()
        self.loader.reset()

        if isinstance(exc, PersistenceError):
            return False
        if isinstance(exc, (SQLAlchemyError, ValueError)):
            raise PersistenceError(
                f"Import of {self.feed} feed failed",
                context={"feed": self.feed, "operation": "IMPORT"},
                original_exception=exc,
            ) from exc
        return False
