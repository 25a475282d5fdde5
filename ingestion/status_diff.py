"""
Latest-status refresh and change detection.

Runs once per sync, after every feed has been imported, over the set
of places whose samples were touched.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple
import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.exceptions import PersistenceError
from ingestion.notifier import StatusNotifier
from models.base import QualityStatus
from models.latest_status import PlaceLatestStatus
from models.notification import NotificationPreference
from models.place import Place
from models.sample import WaterQualitySample
from schemas.status import StatusChangeEvent, StatusSnapshot

logger = logging.getLogger(__name__)

DEFAULT_STATUS_REASONS_ET = {
    QualityStatus.GOOD: "Vee kvaliteet on hea.",
    QualityStatus.BAD: "Vee kvaliteet ei vasta nõuetele.",
    QualityStatus.UNKNOWN: "Vee kvaliteet puudub või on uuendamisel.",
}
DEFAULT_STATUS_REASON_EN = "No quality description was provided."


def detect_status_change(
    previous: Optional[StatusSnapshot],
    current: StatusSnapshot,
    changed_at: datetime,
) -> Optional[StatusChangeEvent]:
    """
    Compare two snapshots of the same place.

    No previous snapshot or an equal status yields ``None``.
    """
    if previous is None:
        return None
    if previous.status == current.status:
        return None
    return StatusChangeEvent(
        place_id=current.place_id,
        previous_status=previous.status,
        current_status=current.status,
        changed_at=changed_at,
    )


def status_reasons(status: QualityStatus, status_raw: Optional[str]) -> Tuple[str, str]:
    """Estonian and English explanation shown next to the status."""
    if status_raw:
        return status_raw, status_raw
    return DEFAULT_STATUS_REASONS_ET[QualityStatus(status)], DEFAULT_STATUS_REASON_EN


class StatusRefresher:
    """Recompute ``PlaceLatestStatus`` rows and notify subscribers of transitions."""

    def __init__(self, db_session: AsyncSession, notifier: StatusNotifier):
        self.db = db_session
        self.notifier = notifier

    async def refresh(self, place_ids: Iterable[int], now: Optional[datetime] = None) -> List[StatusChangeEvent]:
        now = now or utcnow()
        events = []

        for place_id in sorted(set(place_ids)):
            try:
                event = await self._refresh_place(place_id, now)
            except PersistenceError as e:
                logger.warning(
                    f"Latest status refresh failed for place={place_id}: {e.message}",
                    extra={"error_context": e.to_dict()},
                )
                continue

            if event is not None:
                events.append(event)
                await self._notify(event)

        logger.info(f"Refreshed latest status for {len(set(place_ids))} places, {len(events)} changed")
        return events

    async def _refresh_place(self, place_id: int, now: datetime) -> Optional[StatusChangeEvent]:
        """Read-modify-write of one place's latest status inside its own transaction."""
        try:
            result = await self.db.execute(
                select(WaterQualitySample)
                .where(WaterQualitySample.place_id == place_id)
                .order_by(WaterQualitySample.sampled_at.desc(), WaterQualitySample.id.desc())
                .limit(1)
                .execution_options(populate_existing=True)
            )
            sample = result.scalar_one_or_none()
            if sample is None:
                await self.db.rollback()
                return None

            result = await self.db.execute(
                select(PlaceLatestStatus)
                .where(PlaceLatestStatus.place_id == place_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            latest = result.scalar_one_or_none()

            current = StatusSnapshot(
                place_id=place_id,
                status=sample.status,
                sample_id=sample.id,
                sampled_at=sample.sampled_at,
                status_raw=sample.status_raw,
            )
            previous = None
            if latest is not None:
                previous = StatusSnapshot(
                    place_id=place_id,
                    status=latest.status,
                    sample_id=latest.sample_id,
                    sampled_at=latest.sampled_at,
                    status_raw=latest.status_raw,
                )
            event = detect_status_change(previous, current, now)

            if latest is None:
                latest = PlaceLatestStatus(place_id=place_id)
                self.db.add(latest)

            reason_et, reason_en = status_reasons(current.status, current.status_raw)
            latest.sample_id = sample.id
            latest.sampled_at = sample.sampled_at
            latest.status = current.status
            latest.status_raw = current.status_raw
            latest.status_reason_et = reason_et
            latest.status_reason_en = reason_en
            latest.source_url = sample.source_url
            latest.updated_at = now
            if event is not None:
                latest.changed_at = now

            await self.db.commit()
            return event

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to refresh latest status",
                context={"place_id": place_id, "operation": "UPSERT", "table_name": "place_latest_statuses"},
                original_exception=e,
            )

    async def _notify(self, event: StatusChangeEvent) -> None:
        """Fan out to every subscriber; one failing send never affects the others."""
        try:
            place_name = await self.db.scalar(select(Place.name_et).where(Place.id == event.place_id))
            result = await self.db.execute(
                select(NotificationPreference.user_id).where(
                    NotificationPreference.place_id == event.place_id,
                    NotificationPreference.enabled.is_(True),
                    NotificationPreference.quality_change_alert.is_(True),
                )
            )
            user_ids = list(result.scalars().all())
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f"Subscriber lookup failed for place={event.place_id}, no alerts sent: {e}")
            return
        if not user_ids:
            return

        outcomes = await asyncio.gather(
            *(
                self.notifier.notify_status_change(
                    user_id=user_id,
                    place_id=event.place_id,
                    place_name=place_name or "",
                    previous_status=event.previous_status,
                    current_status=event.current_status,
                )
                for user_id in user_ids
            ),
            return_exceptions=True,
        )
        for user_id, outcome in zip(user_ids, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(
                    f"Status alert for user={user_id}, place={event.place_id} failed: {outcome}"
                )
