"""
Unit tests for feed descriptors and refresh intervals
"""

from datetime import datetime, timedelta, timezone

import pytest

from ingestion.feeds import build_feed_descriptors, build_yearly_url, refresh_interval
from models.base import FeedKind

NOW = datetime(2026, 6, 20, 12, 0, tzinfo=timezone.utc)


class TestYearlyUrl:

    def test_placeholder_substitution(self):
        assert build_yearly_url("https://host/x_{year}.xml", 2025) == "https://host/x_2025.xml"

    def test_year_inserted_before_extension(self):
        url = "https://host/opendata/basseini_veeproovid.xml"
        assert build_yearly_url(url, 2026) == "https://host/opendata/basseini_veeproovid_2026.xml"

    def test_query_string_is_preserved(self):
        assert build_yearly_url("https://host/a.xml?lang=et", 2026) == "https://host/a_2026.xml?lang=et"

    def test_path_without_extension(self):
        assert build_yearly_url("https://host/feed", 2026) == "https://host/feed_2026"


class TestFeedDescriptors:

    def test_metadata_first_then_current_year(self, test_settings):
        descriptors = build_feed_descriptors(test_settings, now=NOW)

        assert [d.file_kind for d in descriptors] == [
            FeedKind.POOL_FACILITIES,
            FeedKind.POOL_LOCATIONS,
            FeedKind.BEACH_LOCATIONS,
            FeedKind.POOL_SAMPLES,
            FeedKind.BEACH_SAMPLES,
        ]
        assert all(d.year == 0 for d in descriptors[:3])
        assert descriptors[3].year == 2026
        assert descriptors[4].url.endswith("/supluskoha_veeproovid_2026.xml")

    def test_years_back_descending(self, test_settings):
        config = test_settings.model_copy(update={"TERVISEAMET_YEARS_BACK": 2})
        descriptors = build_feed_descriptors(config, now=NOW)

        sample_years = [d.year for d in descriptors if not d.is_metadata]
        assert sample_years == [2026, 2026, 2025, 2025, 2024, 2024]

    def test_negative_years_back_is_clamped(self, test_settings):
        config = test_settings.model_copy(update={"TERVISEAMET_YEARS_BACK": -3})
        assert len(build_feed_descriptors(config, now=NOW)) == 5


class TestRefreshInterval:

    @pytest.mark.parametrize("kind", [FeedKind.POOL_FACILITIES, FeedKind.POOL_LOCATIONS, FeedKind.BEACH_LOCATIONS])
    def test_metadata_daily(self, kind):
        assert refresh_interval(kind, NOW) == timedelta(hours=24)

    def test_pool_samples_every_two_hours_all_year(self):
        winter = datetime(2026, 1, 10, tzinfo=timezone.utc)
        assert refresh_interval(FeedKind.POOL_SAMPLES, winter) == timedelta(hours=2)

    def test_beach_samples_follow_the_season(self):
        assert refresh_interval(FeedKind.BEACH_SAMPLES, datetime(2026, 5, 1, tzinfo=timezone.utc)) == timedelta(hours=2)
        assert refresh_interval(FeedKind.BEACH_SAMPLES, datetime(2026, 10, 31, tzinfo=timezone.utc)) == timedelta(hours=2)
        assert refresh_interval(FeedKind.BEACH_SAMPLES, datetime(2026, 11, 1, tzinfo=timezone.utc)) == timedelta(hours=24)
        assert refresh_interval(FeedKind.BEACH_SAMPLES, datetime(2026, 4, 30, tzinfo=timezone.utc)) == timedelta(hours=24)
