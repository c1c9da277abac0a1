#!/usr/bin/env python3
"""
NVD record normalization
Maps one raw CVE 2.0 API item onto the canonical stored shape
"""
import math
from typing import Any, Dict, Optional

from cvemirror.core.models import CanonicalRecord, ScoreSlot, parse_timestamp
from cvemirror.utils.error_handler import RecordError

TARGET_LANGUAGE = "en"
NO_DESCRIPTION = "No description"

# Newest schema first
V3_METRIC_KEYS = ("cvssMetricV31", "cvssMetricV30")
V2_METRIC_KEY = "cvssMetricV2"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_entry(metrics: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    entries = metrics.get(key)
    if isinstance(entries, list) and entries and isinstance(entries[0], dict):
        return entries[0]
    return None


def _coerce_score(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return score if math.isfinite(score) else None


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def select_description(descriptions: Any, language: str = TARGET_LANGUAGE) -> str:
    """Pick the description tagged with the target language, wherever it sits in the list"""
    if isinstance(descriptions, list):
        for entry in descriptions:
            if isinstance(entry, dict) and entry.get("lang") == language:
                value = entry.get("value")
                if isinstance(value, str) and value:
                    return value
    return NO_DESCRIPTION


def extract_v3(metrics: Dict[str, Any]) -> Optional[ScoreSlot]:
    """CVSS v3.x slot: 3.1 beats 3.0, first entry of the chosen list"""
    metric = None
    for key in V3_METRIC_KEYS:
        metric = _first_entry(metrics, key)
        if metric is not None:
            break
    if metric is None:
        return None

    cvss_data = _as_dict(metric.get("cvssData"))
    base_score = _coerce_score(cvss_data.get("baseScore"))
    if base_score is None:
        return None

    return ScoreSlot(
        base_score=base_score,
        severity=_optional_str(cvss_data.get("baseSeverity")),
        vector=_optional_str(cvss_data.get("vectorString")),
    )


def extract_v2(metrics: Dict[str, Any]) -> Optional[ScoreSlot]:
    """CVSS v2 slot. Severity lives on the metric wrapper, not inside cvssData."""
    metric = _first_entry(metrics, V2_METRIC_KEY)
    if metric is None:
        return None

    cvss_data = _as_dict(metric.get("cvssData"))
    base_score = _coerce_score(cvss_data.get("baseScore"))
    if base_score is None:
        return None

    return ScoreSlot(
        base_score=base_score,
        severity=_optional_str(metric.get("baseSeverity")),
        vector=_optional_str(cvss_data.get("vectorString")),
    )


def normalize(item: Dict[str, Any]) -> CanonicalRecord:
    """
    Convert one upstream vulnerability item into a CanonicalRecord.

    Malformed optional fields fall back to defaults. A missing id or an
    unparseable published/lastModified timestamp raises RecordError, since
    no valid stored record can be produced from such an item.
    """
    cve = _as_dict(_as_dict(item).get("cve"))

    cve_id = cve.get("id")
    if not isinstance(cve_id, str) or not cve_id.strip():
        raise RecordError("Upstream item has no CVE id")
    cve_id = cve_id.strip()

    try:
        published = parse_timestamp(cve.get("published"))
        last_modified = parse_timestamp(cve.get("lastModified"))
    except ValueError as e:
        raise RecordError(f"{cve_id}: unparseable timestamp ({e})", cve_id=cve_id) from e

    metrics = _as_dict(cve.get("metrics"))

    return CanonicalRecord(
        id=cve_id,
        published=published,
        last_modified=last_modified,
        description=select_description(cve.get("descriptions")),
        v3=extract_v3(metrics),
        v2=extract_v2(metrics),
    )

