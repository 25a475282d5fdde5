"""
Parsers for the five Terviseamet open data XML documents.

Each parser is a pure function ``XML -> list of records``. Rows without
their identity fields (id, name, and for samples the place and sampling
time) are dropped; a document that is not well-formed XML raises
``ParseError``.

Document shapes:
    ujulad.xml                  <ujulad><ujula>...</ujula></ujulad>
    basseinid.xml               <basseinid><bassein>...</bassein></basseinid>
    supluskohad.xml             <supluskohad><supluskoht>...</supluskoht></supluskohad>
    basseini_veeproovid_Y.xml   <basseini_veeproovid><proovivott>...</proovivott></basseini_veeproovid>
    supluskoha_veeproovid_Y.xml <supluskoha_veeproovid><proovivott>...</proovivott></supluskoha_veeproovid>
"""

from typing import List, Optional, Union
import xml.etree.ElementTree as ET
import logging

from core.exceptions import ParseError
from ingestion.transformers.normalizer import (
    child,
    children,
    local_name,
    parse_integer,
    parse_number,
    parse_terviseamet_date,
    pick_text,
    raw_field,
    to_text,
)
from ingestion.transformers.quality import parse_quality_status, pick_worst_status
from models.base import PlaceType, QualityStatus
from schemas.terviseamet import (
    ParsedBeachLocation,
    ParsedCoordinate,
    ParsedPoolFacility,
    ParsedPoolFacilityReference,
    ParsedPoolLocation,
    ParsedSamplingPoint,
    ParsedWaterQualityIndicator,
    ParsedWaterQualityProtocol,
    ParsedWaterQualitySample,
)

logger = logging.getLogger(__name__)

XmlInput = Union[str, bytes]


def _parse_document(xml: XmlInput, document: str) -> ET.Element:
    try:
        return ET.fromstring(xml)
    except ET.ParseError as e:
        raise ParseError(
            "Feed document is not well-formed XML",
            context={"document": document, "position": getattr(e, "position", None)},
            original_exception=e,
        )


def _rows(xml: XmlInput, root_key: str, row_key: str) -> List[ET.Element]:
    root = _parse_document(xml, root_key)
    if local_name(root.tag) != root_key:
        logger.warning(f"Unexpected root element <{local_name(root.tag)}>, expected <{root_key}>")
        return []
    return children(root, row_key)


def parse_coordinate(container: Optional[ET.Element]) -> Optional[ParsedCoordinate]:
    """First <koordinaat> with both x and y inside a <koordinaadid> container."""
    for candidate in children(container, "koordinaat"):
        x = parse_number(raw_field(candidate, "x"))
        y = parse_number(raw_field(candidate, "y"))
        if x is not None and y is not None:
            return ParsedCoordinate(x=x, y=y)
    return None


def parse_sampling_points(container: Optional[ET.Element]) -> List[ParsedSamplingPoint]:
    points = []
    for point in children(container, "proovivotukoht"):
        external_id = pick_text(point, ["id"])
        name = pick_text(point, ["nimi", "nimetus"])
        if not external_id or not name:
            continue
        points.append(
            ParsedSamplingPoint(
                external_id=external_id,
                name=name,
                address=pick_text(point, ["aadress"]),
                coordinate=parse_coordinate(child(point, "koordinaadid")),
                location_details=pick_text(point, ["asukoha_tapsustus"]),
                water_source_type=pick_text(point, ["veeallika_liik"]),
                point_type=pick_text(point, ["proovivotukoha_liik"]),
                point_class=pick_text(point, ["proovivotukoha_liigitus"]),
            )
        )
    return points


def parse_sampling_methods(container: Optional[ET.Element]) -> List[str]:
    """Distinct sampling method names in document order."""
    if container is None:
        return []

    methods = []
    entries = children(container, "proovivotu_metoodika")
    if entries:
        for entry in entries:
            text = to_text(entry)
            if text:
                methods.append(text)
    else:
        text = to_text(container)
        if text:
            methods.append(text)

    return list(dict.fromkeys(methods))


# ============================================================================
# Metadata feeds
# ============================================================================

def parse_pool_facilities_xml(xml: XmlInput) -> List[ParsedPoolFacility]:
    facilities = []
    for row in _rows(xml, "ujulad", "ujula"):
        external_id = pick_text(row, ["id"])
        name = pick_text(row, ["nimetus"])
        if not external_id or not name:
            logger.debug("Dropping <ujula> row without id or name")
            continue

        pools = []
        for pool in children(child(row, "basseinid"), "bassein"):
            pool_id = pick_text(pool, ["id"])
            pool_name = pick_text(pool, ["nimetus"])
            if not pool_id or not pool_name:
                continue
            pools.append(
                ParsedPoolFacilityReference(
                    external_id=pool_id,
                    name=pool_name,
                    source_url=pick_text(pool, ["basseini_avaandmete_URL"]),
                )
            )

        facilities.append(
            ParsedPoolFacility(
                external_id=external_id,
                name=name,
                address=pick_text(row, ["aadress"]),
                type=pick_text(row, ["tyyp"]),
                source_url=pick_text(row, ["ujula_avaandmete_URL"]),
                coordinate=parse_coordinate(child(row, "koordinaadid")),
                user_count=parse_integer(raw_field(row, "kasutajate_arv")),
                owner_external_id=pick_text(row, ["valdaja_id"]),
                owner_name=pick_text(row, ["valdaja_nimi"]),
                owner_phone=pick_text(row, ["valdaja_telefon"]),
                owner_email=pick_text(row, ["valdaja_epost"]),
                last_inspection_at=parse_terviseamet_date(raw_field(row, "viimane_inspekteerimine")),
                inspector=pick_text(row, ["inspekteerija"]),
                pools=pools,
            )
        )
    return facilities


def parse_pool_locations_xml(xml: XmlInput) -> List[ParsedPoolLocation]:
    locations = []
    for row in _rows(xml, "basseinid", "bassein"):
        external_id = pick_text(row, ["id"])
        name = pick_text(row, ["nimetus"])
        if not external_id or not name:
            logger.debug("Dropping <bassein> row without id or name")
            continue

        assessment_raw = pick_text(row, ["hinnang"])
        locations.append(
            ParsedPoolLocation(
                external_id=external_id,
                facility_external_id=pick_text(row, ["ujula_id"]),
                name=name,
                pool_type=pick_text(row, ["tyyp"]),
                load_text=pick_text(row, ["koormus"]),
                water_exchange_type=pick_text(row, ["veevahetustyyp"]),
                area_m2=parse_number(raw_field(row, "pindala")),
                volume_m3=parse_number(raw_field(row, "ruumala")),
                perimeter_m=parse_number(raw_field(row, "ymbermoot")),
                min_depth_cm=parse_number(raw_field(row, "min_sygavus")),
                max_depth_cm=parse_number(raw_field(row, "max_sygavus")),
                last_inspection_at=parse_terviseamet_date(raw_field(row, "viimane_inspekteerimine")),
                inspector=pick_text(row, ["inspekteerija"]),
                assessment_raw=assessment_raw,
                assessment_status=parse_quality_status(assessment_raw),
                assessment_date=parse_terviseamet_date(raw_field(row, "hinnangu_kuupaev")),
                inspector_notes=pick_text(row, ["inspektori_markused"]),
                sampling_points=parse_sampling_points(child(row, "proovivotukohad")),
            )
        )
    return locations


def parse_beach_locations_xml(xml: XmlInput) -> List[ParsedBeachLocation]:
    locations = []
    for row in _rows(xml, "supluskohad", "supluskoht"):
        external_id = pick_text(row, ["id"])
        name = pick_text(row, ["nimetus"])
        if not external_id or not name:
            logger.debug("Dropping <supluskoht> row without id or name")
            continue

        locations.append(
            ParsedBeachLocation(
                external_id=external_id,
                name=name,
                group_id=pick_text(row, ["supluskoha_grupi_id"]),
                beach_type=pick_text(row, ["tyyp"]),
                source_url=pick_text(row, ["supluskoha_avaandmete_URL"]),
                profile_url=pick_text(row, ["suplusvee_profiili_URL"]),
                address=pick_text(row, ["aadress"]),
                coordinate=parse_coordinate(child(row, "koordinaadid")),
                water_body_name=pick_text(row, ["veekogu_nimi"]),
                water_body_type=pick_text(row, ["veekogu_tyyp"]),
                visitor_count=parse_integer(raw_field(row, "kylastajate_arv")),
                shoreline_length_m=parse_number(raw_field(row, "rannajoone_pikkus")),
                monitoring_calendar_date=parse_terviseamet_date(
                    raw_field(row, "seirekalendri_kooskolastamise_kuupaev")
                ),
                last_inspection_at=parse_terviseamet_date(raw_field(row, "viimane_inspekteerimine")),
                inspector=pick_text(row, ["inspekteerija"]),
                latest_sample_at=parse_terviseamet_date(raw_field(row, "viimane_proovivott")),
                latest_quality_raw=pick_text(row, ["veekvaliteet"]),
                latest_quality_class_raw=pick_text(row, ["suplusvee_kvaliteediklass"]),
                sampling_methods=parse_sampling_methods(child(row, "proovivotu_metoodikad")),
                sampling_protocol_number=pick_text(row, ["proovivotuprotokolli_number"]),
                cover_letter_number=pick_text(row, ["kaaskirja_number"]),
                sampler_role=pick_text(row, ["proovivotja_amet"]),
                inspector_comments=pick_text(row, ["inspektori_kommentaarid"]),
                sampling_points=parse_sampling_points(child(row, "proovivotukohad")),
            )
        )
    return locations


# ============================================================================
# Sample feeds
# ============================================================================

def parse_indicators(container: Optional[ET.Element]) -> List[ParsedWaterQualityIndicator]:
    indicators = []
    for index, indicator in enumerate(children(container, "naitaja")):
        name = pick_text(indicator, ["nimetus"])
        if not name:
            continue
        assessment_raw = pick_text(indicator, ["hinnang"])
        indicators.append(
            ParsedWaterQualityIndicator(
                order=index,
                external_id=pick_text(indicator, ["id"]),
                name=name,
                value_raw=pick_text(indicator, ["sisaldus"]),
                value_number=parse_number(raw_field(indicator, "sisaldus")),
                unit=pick_text(indicator, ["yhik"]),
                assessment_raw=assessment_raw,
                assessment_status=parse_quality_status(assessment_raw),
            )
        )
    return indicators


def protocol_status(assessment_raw: Optional[str], indicators: List[ParsedWaterQualityIndicator]) -> QualityStatus:
    """
    The protocol's own assessment, or the worst indicator when the
    assessment is missing or unrecognized.
    """
    own = parse_quality_status(assessment_raw)
    if own == QualityStatus.UNKNOWN and indicators:
        return pick_worst_status(indicator.assessment_status for indicator in indicators)
    return own


def parse_protocols(container: Optional[ET.Element]) -> List[ParsedWaterQualityProtocol]:
    protocols = []
    for index, protocol in enumerate(children(container, "katseprotokoll")):
        indicators = parse_indicators(child(protocol, "naitajad"))
        assessment_raw = pick_text(protocol, ["hinnang"])
        protocols.append(
            ParsedWaterQualityProtocol(
                order=index,
                cover_letter_number=pick_text(protocol, ["kaaskirja_number"]),
                protocol_number=pick_text(protocol, ["katseprotokolli_number"]),
                assessment_raw=assessment_raw,
                assessment_status=protocol_status(assessment_raw, indicators),
                indicators=indicators,
            )
        )
    return protocols


def _parse_sample_feed(
    xml: XmlInput,
    root_key: str,
    place_id_field: str,
    place_name_field: str,
    place_type: PlaceType,
    source_year: int,
    source_url: str,
) -> List[ParsedWaterQualitySample]:
    samples = []
    for row in _rows(xml, root_key, "proovivott"):
        external_id = pick_text(row, ["id"])
        place_external_id = pick_text(row, [place_id_field])
        place_name = pick_text(row, [place_name_field])
        sampled_at = parse_terviseamet_date(raw_field(row, "proovivotu_aeg"))
        if not external_id or not place_external_id or not place_name or sampled_at is None:
            logger.debug(f"Dropping <proovivott> row id={external_id!r} without identity fields")
            continue

        protocols = parse_protocols(child(row, "katseprotokollid"))
        overall_raw = next((p.assessment_raw for p in protocols if p.assessment_raw), None)
        point = child(row, "proovivotukoht")

        samples.append(
            ParsedWaterQualitySample(
                external_id=external_id,
                place_external_id=place_external_id,
                place_name=place_name,
                place_type=place_type,
                sampled_at=sampled_at,
                source_year=source_year,
                source_url=source_url,
                water_type=pick_text(row, ["veeliik"]),
                sample_type=pick_text(row, ["proovi_liik"]),
                sampler_name=pick_text(row, ["proovivotja_nimi"]),
                sampler_role=pick_text(row, ["proovivotja_amet"]),
                sampler_certificate_number=pick_text(row, ["proovivotja_atesteerimistunnistuse_number"]),
                sampling_purpose=pick_text(row, ["proovivotu_eesmark"]),
                sampling_method=pick_text(row, ["proovivotu_metoodika"]),
                sampling_protocol_number=pick_text(row, ["proovivotuprotokolli_number"]),
                sampling_point_external_id=pick_text(point, ["id"]),
                sampling_point_name=pick_text(point, ["nimetus", "nimi"]),
                protocols=protocols,
                overall_assessment_raw=overall_raw,
                overall_status=pick_worst_status(p.assessment_status for p in protocols),
            )
        )
    return samples


def parse_pool_samples_xml(xml: XmlInput, source_year: int, source_url: str) -> List[ParsedWaterQualitySample]:
    return _parse_sample_feed(
        xml,
        root_key="basseini_veeproovid",
        place_id_field="bassein_id",
        place_name_field="bassein",
        place_type=PlaceType.POOL,
        source_year=source_year,
        source_url=source_url,
    )


def parse_beach_samples_xml(xml: XmlInput, source_year: int, source_url: str) -> List[ParsedWaterQualitySample]:
    return _parse_sample_feed(
        xml,
        root_key="supluskoha_veeproovid",
        place_id_field="supluskoht_id",
        place_name_field="supluskoht",
        place_type=PlaceType.BEACH,
        source_year=source_year,
        source_url=source_url,
    )
