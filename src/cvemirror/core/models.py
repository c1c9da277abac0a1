"""
Canonical CVE record shapes and their document form
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

VECTOR_PLACEHOLDER = "N/A"


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an NVD timestamp into an aware UTC datetime.

    NVD sends ISO strings without a zone designator
    (e.g. ``2024-01-15T10:30:00.000``); those are read as UTC.
    Raises ValueError for anything that is not a parseable string.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Not a timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime as ISO-8601 UTC with millisecond precision and a Z suffix"""
    value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


@dataclass(frozen=True)
class ScoreSlot:
    """One CVSS version's score. Only ever built with a real base score."""
    base_score: float
    severity: Optional[str] = None
    vector: Optional[str] = None

    @property
    def display_vector(self) -> str:
        return self.vector if self.vector else VECTOR_PLACEHOLDER

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"baseScore": self.base_score}
        if self.severity is not None:
            doc["severity"] = self.severity
        if self.vector is not None:
            doc["vector"] = self.vector
        return doc

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> Optional["ScoreSlot"]:
        if not doc or doc.get("baseScore") is None:
            return None
        return cls(
            base_score=float(doc["baseScore"]),
            severity=doc.get("severity"),
            vector=doc.get("vector"),
        )


@dataclass(frozen=True)
class CanonicalRecord:
    """A CVE as stored and served by the mirror"""
    id: str
    published: datetime
    last_modified: datetime
    description: str
    v3: Optional[ScoreSlot] = None
    v2: Optional[ScoreSlot] = None

    def to_document(self) -> Dict[str, Any]:
        """Document form: absent score slots are omitted rather than nulled"""
        score: Dict[str, Any] = {}
        if self.v3 is not None:
            score["v3"] = self.v3.to_document()
        if self.v2 is not None:
            score["v2"] = self.v2.to_document()

        doc: Dict[str, Any] = {
            "id": self.id,
            "published": format_timestamp(self.published),
            "lastModified": format_timestamp(self.last_modified),
            "description": self.description,
        }
        if score:
            doc["score"] = score
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "CanonicalRecord":
        score = doc.get("score") or {}
        return cls(
            id=doc["id"],
            published=parse_timestamp(doc["published"]),
            last_modified=parse_timestamp(doc["lastModified"]),
            description=doc["description"],
            v3=ScoreSlot.from_document(score.get("v3")),
            v2=ScoreSlot.from_document(score.get("v2")),
        )

    def to_response(self) -> Dict[str, Any]:
        """Document form for API consumers, with missing vectors shown as N/A"""
        doc = self.to_document()
        for version, slot in (("v3", self.v3), ("v2", self.v2)):
            if slot is not None:
                doc["score"][version]["vector"] = slot.display_vector
        return doc


@dataclass
class PageResult:
    """One page of the upstream feed"""
    vulnerabilities: list
    total_results: int
    start_index: int = 0
    results_per_page: int = 0
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)
