"""
Feed descriptors: which Terviseamet files to check on a run.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit
import posixpath

from core.clock import utcnow
from core.config import Settings, settings as default_settings
from models.base import FeedKind

METADATA_REFRESH_INTERVAL = timedelta(hours=24)
SAMPLE_REFRESH_INTERVAL = timedelta(hours=2)
BEACH_OFF_SEASON_REFRESH_INTERVAL = timedelta(hours=24)

# May through October
BEACH_SEASON_MONTHS = range(5, 11)


@dataclass(frozen=True)
class FeedDescriptor:
    """One independently tracked feed instance. ``year`` is 0 for non-yearly feeds."""
    file_kind: FeedKind
    year: int
    url: str

    @property
    def is_metadata(self) -> bool:
        return self.file_kind.is_metadata


def build_yearly_url(template: str, year: int) -> str:
    """
    Resolve a yearly feed URL.

    Substitutes ``{year}`` when present, otherwise inserts ``_<year>``
    before the file extension of the URL path (or appends it when the
    path has no extension).
    """
    if "{year}" in template:
        return template.replace("{year}", str(year))

    parts = urlsplit(template)
    root, ext = posixpath.splitext(parts.path)
    return urlunsplit(parts._replace(path=f"{root}_{year}{ext}"))


def build_feed_descriptors(
    config: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> List[FeedDescriptor]:
    """
    Metadata feeds first, then one pool and one beach sample feed per year
    from the current year down to ``current - TERVISEAMET_YEARS_BACK``.
    """
    config = config or default_settings
    now = now or utcnow()

    descriptors = [
        FeedDescriptor(FeedKind.POOL_FACILITIES, 0, config.TERVISEAMET_POOL_FACILITIES_URL),
        FeedDescriptor(FeedKind.POOL_LOCATIONS, 0, config.TERVISEAMET_POOL_LOCATIONS_URL),
        FeedDescriptor(FeedKind.BEACH_LOCATIONS, 0, config.TERVISEAMET_BEACH_LOCATIONS_URL),
    ]

    years_back = max(config.TERVISEAMET_YEARS_BACK, 0)
    for year in range(now.year, now.year - years_back - 1, -1):
        descriptors.append(
            FeedDescriptor(FeedKind.POOL_SAMPLES, year, build_yearly_url(config.TERVISEAMET_POOL_SAMPLES_URL, year))
        )
        descriptors.append(
            FeedDescriptor(FeedKind.BEACH_SAMPLES, year, build_yearly_url(config.TERVISEAMET_BEACH_SAMPLES_URL, year))
        )
    return descriptors


def refresh_interval(file_kind: FeedKind, now: datetime) -> timedelta:
    """Minimum time between two checks of the same feed."""
    if file_kind.is_metadata:
        return METADATA_REFRESH_INTERVAL
    if file_kind == FeedKind.POOL_SAMPLES:
        return SAMPLE_REFRESH_INTERVAL
    if now.month in BEACH_SEASON_MONTHS:
        return SAMPLE_REFRESH_INTERVAL
    return BEACH_OFF_SEASON_REFRESH_INTERVAL
