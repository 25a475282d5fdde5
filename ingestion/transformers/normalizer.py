"""
Low-level field extraction helpers shared by the Terviseamet XML parsers.

Terviseamet rows mix attributes and child elements and occasionally
rename fields between schema versions, so every lookup goes through
``pick_text`` with a list of candidate names. All helpers return
``None`` instead of raising when a value is missing or malformed.
"""

import math
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union
import xml.etree.ElementTree as ET
import logging

logger = logging.getLogger(__name__)

FieldValue = Union[ET.Element, str, int, float, None]

_HEX_ENTITY = re.compile(r"&#x([0-9a-fA-F]+);")
_DEC_ENTITY = re.compile(r"&#([0-9]+);")
_NAMED_ENTITIES = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
)

_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_INTEGER_PREFIX = re.compile(r"^[+-]?\d+")
_TERVISEAMET_DATE = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})(?:\s+(\d{2}):(\d{2}))?$")


def _decode_codepoint(raw: str, radix: int) -> str:
    try:
        return chr(int(raw, radix))
    except (ValueError, OverflowError):
        return ""


def decode_xml_entities(value: str) -> str:
    """
    Decode character references and the five predefined XML entities.

    The feeds sometimes double-escape text, so values that survived the
    XML parser can still contain ``&#245;`` or ``&amp;``.
    """
    value = _HEX_ENTITY.sub(lambda m: _decode_codepoint(m.group(1), 16), value)
    value = _DEC_ENTITY.sub(lambda m: _decode_codepoint(m.group(1), 10), value)
    for entity, char in _NAMED_ENTITIES:
        value = value.replace(entity, char)
    return value


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    """First direct child with the given local name."""
    if element is None:
        return None
    for candidate in element:
        if local_name(candidate.tag) == name:
            return candidate
    return None


def children(element: Optional[ET.Element], name: str) -> List[ET.Element]:
    """All direct children with the given local name, in document order."""
    if element is None:
        return []
    return [candidate for candidate in element if local_name(candidate.tag) == name]


def to_text(value: FieldValue) -> Optional[str]:
    """Decoded, stripped text of a value or ``None`` when blank."""
    if value is None:
        return None
    if isinstance(value, ET.Element):
        value = value.text
        if value is None:
            return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    text = decode_xml_entities(str(value)).strip()
    return text or None


def raw_field(element: Optional[ET.Element], name: str) -> FieldValue:
    """Attribute value if present, else the child element of that name."""
    if element is None:
        return None
    if name in element.attrib:
        return element.attrib[name]
    return child(element, name)


def pick_text(element: Optional[ET.Element], keys: Iterable[str]) -> Optional[str]:
    """First non-blank value among candidate field names."""
    for key in keys:
        text = to_text(raw_field(element, key))
        if text:
            return text
    return None


def parse_number(value: FieldValue) -> Optional[float]:
    """
    Parse a decimal that may use a comma separator (``"12,5"``).

    Like a lenient float parser, a leading numeric prefix is accepted and
    trailing text ignored; anything else yields ``None``.
    """
    text = to_text(value)
    if not text:
        return None
    match = _NUMBER_PREFIX.match(text.replace(",", ".", 1))
    if not match:
        return None
    try:
        number = float(match.group(0))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_integer(value: FieldValue) -> Optional[int]:
    text = to_text(value)
    if not text:
        return None
    match = _INTEGER_PREFIX.match(text)
    return int(match.group(0)) if match else None


def parse_terviseamet_date(value: FieldValue) -> Optional[datetime]:
    """
    Parse ``DD.MM.YYYY`` or ``DD.MM.YYYY HH:MM`` as UTC.

    Other strings fall back to ISO 8601; naive results are taken as UTC.
    Impossible calendar dates (``31.02.2026``) return ``None``.
    """
    text = to_text(value)
    if not text:
        return None

    match = _TERVISEAMET_DATE.match(text)
    if match:
        day, month, year, hour, minute = match.groups()
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0),
                tzinfo=timezone.utc,
            )
        except ValueError:
            logger.debug(f"Invalid calendar date dropped: {text!r}")
            return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
