"""
Pure classification heuristics: quality labels, worst-of aggregation
and municipality inference.
"""

import re
import unicodedata
from typing import Dict, Iterable, Optional

from models.base import QualityStatus

QUALITY_LABEL_TO_STATUS: Dict[str, QualityStatus] = {
    "hea": QualityStatus.GOOD,
    "väga hea": QualityStatus.GOOD,
    "good": QualityStatus.GOOD,
    "korras": QualityStatus.GOOD,
    "vastab": QualityStatus.GOOD,
    "vastab nõuetele": QualityStatus.GOOD,
    "compliant": QualityStatus.GOOD,
    "mittevastav": QualityStatus.BAD,
    "ei vasta": QualityStatus.BAD,
    "ei vasta nõuetele": QualityStatus.BAD,
    "halb": QualityStatus.BAD,
    "kehv": QualityStatus.BAD,
    "bad": QualityStatus.BAD,
    "unknown": QualityStatus.UNKNOWN,
    "teadmata": QualityStatus.UNKNOWN,
    "puudub": QualityStatus.UNKNOWN,
}

QUALITY_STATUS_PRIORITY: Dict[QualityStatus, int] = {
    QualityStatus.BAD: 3,
    QualityStatus.UNKNOWN: 2,
    QualityStatus.GOOD: 1,
}

UNKNOWN_MUNICIPALITY = "unknown"
MUNICIPALITY_MARKERS = ("linnaosa", "vald", "linn")

_WHITESPACE = re.compile(r"\s+")


def _strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


_ASCII_LABEL_TO_STATUS = {_strip_accents(k): v for k, v in QUALITY_LABEL_TO_STATUS.items()}


def normalize_label(raw: str) -> str:
    return _WHITESPACE.sub(" ", raw.strip().lower())


def parse_quality_status(raw: Optional[str]) -> QualityStatus:
    """
    Classify a free-text assessment label.

    Matching is case and whitespace insensitive and tolerates missing
    diacritics (``vastab nouetele``). Unrecognized labels are UNKNOWN.
    """
    if not raw:
        return QualityStatus.UNKNOWN

    normalized = normalize_label(raw)
    if normalized in QUALITY_LABEL_TO_STATUS:
        return QUALITY_LABEL_TO_STATUS[normalized]
    return _ASCII_LABEL_TO_STATUS.get(_strip_accents(normalized), QualityStatus.UNKNOWN)


def pick_worst_status(statuses: Iterable[QualityStatus]) -> QualityStatus:
    """Highest-priority status (BAD > UNKNOWN > GOOD); UNKNOWN when empty."""
    worst: Optional[QualityStatus] = None
    for status in statuses:
        if worst is None or QUALITY_STATUS_PRIORITY[status] > QUALITY_STATUS_PRIORITY[worst]:
            worst = status
    return worst if worst is not None else QualityStatus.UNKNOWN


def infer_municipality(address: Optional[str]) -> str:
    """
    Best-effort municipality from an Estonian address.

    Walks the comma-separated components from the end and returns the
    first one mentioning ``vald``, ``linn`` or ``linnaosa``. Ambiguous
    addresses may be misclassified; no match yields ``"unknown"``.
    """
    if not address:
        return UNKNOWN_MUNICIPALITY

    for part in reversed(address.split(",")):
        candidate = part.strip()
        lowered = candidate.lower()
        if candidate and any(marker in lowered for marker in MUNICIPALITY_MARKERS):
            return candidate
    return UNKNOWN_MUNICIPALITY
