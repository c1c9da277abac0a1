#!/usr/bin/env python3
"""
Filter compilation
Turns validated query parameters into a composable predicate tree
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from cvemirror.core.models import parse_timestamp

FIELD_ID = "id"
FIELD_DESCRIPTION = "description"
FIELD_PUBLISHED = "published"
FIELD_LAST_MODIFIED = "lastModified"
FIELD_V3_SCORE = "score.v3.baseScore"
FIELD_V2_SCORE = "score.v2.baseScore"

SCORE_FIELDS = {"v3": FIELD_V3_SCORE, "v2": FIELD_V2_SCORE}


def resolve_field(document: Dict[str, Any], path: str) -> Any:
    """Walk a dotted path through a record document; missing segments give None"""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _comparable(value: Any, bound: Any) -> Any:
    if isinstance(bound, datetime) and isinstance(value, str):
        return parse_timestamp(value)
    return value


@dataclass(frozen=True)
class MatchAll:
    """Matches every record"""

    def matches(self, document: Dict[str, Any]) -> bool:
        return True


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any

    def matches(self, document: Dict[str, Any]) -> bool:
        return resolve_field(document, self.field) == self.value


@dataclass(frozen=True)
class Contains:
    """Case-insensitive literal substring match"""
    field: str
    text: str

    def matches(self, document: Dict[str, Any]) -> bool:
        value = resolve_field(document, self.field)
        return isinstance(value, str) and self.text.casefold() in value.casefold()


@dataclass(frozen=True)
class Prefix:
    """Case-insensitive prefix match"""
    field: str
    prefix: str

    def matches(self, document: Dict[str, Any]) -> bool:
        value = resolve_field(document, self.field)
        return isinstance(value, str) and value.casefold().startswith(self.prefix.casefold())


@dataclass(frozen=True)
class Range:
    """Half-open range [gte, lt). required=True also demands the field be present."""
    field: str
    gte: Any = None
    lt: Any = None
    required: bool = False

    def matches(self, document: Dict[str, Any]) -> bool:
        value = resolve_field(document, self.field)
        if value is None:
            return False
        if self.gte is not None and _comparable(value, self.gte) < self.gte:
            return False
        if self.lt is not None and _comparable(value, self.lt) >= self.lt:
            return False
        return True


@dataclass(frozen=True)
class And:
    terms: Tuple["Predicate", ...]

    def matches(self, document: Dict[str, Any]) -> bool:
        return all(term.matches(document) for term in self.terms)


@dataclass(frozen=True)
class Or:
    terms: Tuple["Predicate", ...]

    def matches(self, document: Dict[str, Any]) -> bool:
        return any(term.matches(document) for term in self.terms)


Predicate = Union[MatchAll, Eq, Contains, Prefix, Range, And, Or]


@dataclass(frozen=True)
class ValidatedQuery:
    """Typed, range-checked query parameters"""
    id: Optional[str] = None
    keyword: Optional[str] = None
    year: Optional[int] = None
    modified_last_days: Optional[int] = None
    score_min: Optional[float] = None
    score_ver: Optional[str] = None
    page: int = 1
    limit: int = 10
    sort: Optional[str] = None


class PredicateBuilder:
    """Collects conditions, then collapses them into a single predicate"""

    def __init__(self):
        self.conditions: List[Predicate] = []

    def add(self, condition: Predicate) -> "PredicateBuilder":
        self.conditions.append(condition)
        return self

    def collapse(self) -> Predicate:
        """No conditions match everything; one stands alone; several are ANDed"""
        if not self.conditions:
            return MatchAll()
        if len(self.conditions) == 1:
            return self.conditions[0]
        return And(tuple(self.conditions))


def year_range_utc(year: int) -> Tuple[datetime, datetime]:
    start = datetime(year, 1, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    return start, end


def year_condition(year: int) -> Predicate:
    """Published inside the UTC year, or an id that carries the year"""
    start, end = year_range_utc(year)
    return Or((
        Range(FIELD_PUBLISHED, gte=start, lt=end),
        Prefix(FIELD_ID, f"CVE-{year:04d}-"),
    ))


def score_condition(score_min: float, score_ver: Optional[str] = None) -> Predicate:
    if score_ver in SCORE_FIELDS:
        return Range(SCORE_FIELDS[score_ver], gte=score_min, required=True)
    return Or((
        Range(FIELD_V3_SCORE, gte=score_min, required=True),
        Range(FIELD_V2_SCORE, gte=score_min, required=True),
    ))


def compile_filter(query: ValidatedQuery, now: Optional[datetime] = None) -> Predicate:
    """
    Compile a validated query into a predicate tree.

    Every present parameter contributes one condition; conditions are ANDed
    and a lone condition is returned without an AND wrapper.
    """
    builder = PredicateBuilder()

    if query.id:
        builder.add(Eq(FIELD_ID, query.id))

    if query.keyword:
        builder.add(Contains(FIELD_DESCRIPTION, query.keyword))

    if query.year is not None:
        builder.add(year_condition(query.year))

    if query.modified_last_days:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=query.modified_last_days)
        builder.add(Range(FIELD_LAST_MODIFIED, gte=since))

    if query.score_min is not None:
        builder.add(score_condition(query.score_min, query.score_ver))

    return builder.collapse()
