"""
Unit tests for the Terviseamet XML parsers
"""

import pytest
from datetime import datetime, timezone

from core.exceptions import ParseError
from ingestion.transformers.terviseamet_parsers import (
    parse_beach_locations_xml,
    parse_beach_samples_xml,
    parse_pool_facilities_xml,
    parse_pool_locations_xml,
    parse_pool_samples_xml,
)
from models.base import PlaceType, QualityStatus

SAMPLES_URL = "https://opendata.test/opendata/supluskoha_veeproovid_2026.xml"


def _sample_xml(protocols: str) -> str:
    return f"""
    <supluskoha_veeproovid>
      <proovivott>
        <id>1</id>
        <supluskoht_id>119</supluskoht_id>
        <supluskoht>Pirita rand</supluskoht>
        <proovivotu_aeg>01.06.2026</proovivotu_aeg>
        <katseprotokollid>{protocols}</katseprotokollid>
      </proovivott>
    </supluskoha_veeproovid>
    """


def _protocol(assessment: str = "", indicators: str = "") -> str:
    hinnang = f"<hinnang>{assessment}</hinnang>" if assessment else ""
    return f"<katseprotokoll>{hinnang}<naitajad>{indicators}</naitajad></katseprotokoll>"


def _indicator(assessment: str) -> str:
    return f"<naitaja><nimetus>E. coli</nimetus><hinnang>{assessment}</hinnang></naitaja>"


class TestPoolFacilities:

    def test_parses_facility_and_pool_references(self, fixture_xml):
        facilities = parse_pool_facilities_xml(fixture_xml("ujulad.xml"))

        assert len(facilities) == 1
        facility = facilities[0]
        assert facility.external_id == "87"
        assert facility.owner_name == "Adeli Spa OÜ"
        assert facility.user_count == 350
        assert facility.coordinate.x == 6588123.5
        assert facility.coordinate.y == 542310.25
        assert facility.last_inspection_at == datetime(2026, 3, 12, tzinfo=timezone.utc)
        assert "ujula_id=87" in facility.source_url
        assert [pool.external_id for pool in facility.pools] == ["244", "245"]
        assert facility.pools[1].source_url is None


class TestPoolLocations:

    def test_parses_pool_with_assessment_and_sampling_points(self, fixture_xml):
        pools = parse_pool_locations_xml(fixture_xml("basseinid.xml"))

        assert len(pools) == 1
        pool = pools[0]
        assert pool.facility_external_id == "87"
        assert pool.area_m2 == 312.5
        assert pool.assessment_status == QualityStatus.GOOD
        assert pool.last_inspection_at == datetime(2026, 3, 12, 10, 15, tzinfo=timezone.utc)
        # point without a name is dropped
        assert [point.external_id for point in pool.sampling_points] == ["9001"]


class TestBeachLocations:

    def test_parses_beach_profile_fields(self, fixture_xml):
        beaches = parse_beach_locations_xml(fixture_xml("supluskohad.xml"))

        assert len(beaches) == 1
        beach = beaches[0]
        assert beach.external_id == "119"
        assert beach.name == "Pirita rand"
        assert beach.visitor_count == 5000
        assert beach.shoreline_length_m == 2000.5
        assert beach.latest_sample_at == datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)
        assert beach.sampling_methods == ["EVS-EN ISO 19458", "Pinnaveeproov"]
        assert beach.sampling_points[0].location_details == "Päästetorni juures"
        assert beach.sampling_points[0].coordinate.x == 6591240


class TestSampleFeeds:

    def test_beach_samples_drop_rows_without_sampling_time(self, fixture_xml):
        samples = parse_beach_samples_xml(fixture_xml("supluskoha_veeproovid_run1.xml"), 2026, SAMPLES_URL)

        assert [sample.external_id for sample in samples] == ["5001"]
        sample = samples[0]
        assert sample.place_type == PlaceType.BEACH
        assert sample.place_external_id == "119"
        assert sample.source_year == 2026
        assert sample.source_url == SAMPLES_URL
        assert sample.overall_status == QualityStatus.GOOD
        assert sample.overall_assessment_raw == "vastab nõuetele"
        assert sample.sampling_point_external_id is None
        assert sample.sampling_point_name == "Pirita rand,   keskosa"
        assert [i.order for i in sample.protocols[0].indicators] == [0, 1]

    def test_pool_samples(self, fixture_xml):
        samples = parse_pool_samples_xml(fixture_xml("basseini_veeproovid.xml"), 2026, "u")

        assert len(samples) == 1
        sample = samples[0]
        assert sample.place_type == PlaceType.POOL
        assert sample.place_external_id == "244"
        assert sample.sampling_point_external_id == "9001"
        indicators = sample.protocols[0].indicators
        assert indicators[0].value_number == 0.6
        assert indicators[1].value_raw == "<1"
        assert indicators[1].value_number is None
        # protocol without its own assessment takes the worst indicator
        assert sample.protocols[0].assessment_status == QualityStatus.GOOD
        assert sample.overall_assessment_raw is None

    def test_protocols_good_bad_unknown_is_bad(self):
        xml = _sample_xml(_protocol("hea") + _protocol("ei vasta") + _protocol("teadmata"))
        sample = parse_beach_samples_xml(xml, 2026, SAMPLES_URL)[0]
        assert [p.assessment_status for p in sample.protocols] == [
            QualityStatus.GOOD, QualityStatus.BAD, QualityStatus.UNKNOWN,
        ]
        assert sample.overall_status == QualityStatus.BAD

    def test_protocols_good_unknown_is_unknown(self):
        xml = _sample_xml(_protocol("hea") + _protocol("teadmata"))
        assert parse_beach_samples_xml(xml, 2026, SAMPLES_URL)[0].overall_status == QualityStatus.UNKNOWN

    def test_all_good_protocols(self):
        xml = _sample_xml(_protocol("hea") + _protocol("vastab"))
        assert parse_beach_samples_xml(xml, 2026, SAMPLES_URL)[0].overall_status == QualityStatus.GOOD

    def test_unrecognized_protocol_assessment_falls_back_to_indicators(self):
        xml = _sample_xml(_protocol("vt lisa", _indicator("vastab") + _indicator("ei vasta")))
        protocol = parse_beach_samples_xml(xml, 2026, SAMPLES_URL)[0].protocols[0]
        assert protocol.assessment_raw == "vt lisa"
        assert protocol.assessment_status == QualityStatus.BAD

    def test_protocol_assessment_wins_over_indicators(self):
        xml = _sample_xml(_protocol("vastab", _indicator("ei vasta")))
        protocol = parse_beach_samples_xml(xml, 2026, SAMPLES_URL)[0].protocols[0]
        assert protocol.assessment_status == QualityStatus.GOOD

    def test_no_protocols_is_unknown(self):
        sample = parse_beach_samples_xml(_sample_xml(""), 2026, SAMPLES_URL)[0]
        assert sample.protocols == []
        assert sample.overall_status == QualityStatus.UNKNOWN


class TestDocumentErrors:

    def test_malformed_xml_raises_parse_error(self):
        with pytest.raises(ParseError):
            parse_pool_locations_xml("<basseinid><bassein>")

    def test_wrong_root_yields_no_rows(self, fixture_xml):
        assert parse_pool_locations_xml(fixture_xml("supluskohad.xml")) == []
