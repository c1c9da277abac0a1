"""
Query execution: sorting, pagination, total counts and detail lookups
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cvemirror.core.filters import Predicate, ValidatedQuery, compile_filter
from cvemirror.core.models import CanonicalRecord
from cvemirror.core.storage import CVEStore
from cvemirror.utils.error_handler import NotFoundError

logger = logging.getLogger(__name__)

ALLOWED_LIMITS = (10, 50, 100, 200, 500)
DEFAULT_LIMIT = 10
DEFAULT_SORT = "-published"


def effective_limit(limit: Optional[int]) -> int:
    """Anything outside the allow-list quietly becomes the default page size"""
    return limit if limit in ALLOWED_LIMITS else DEFAULT_LIMIT


@dataclass
class QueryPage:
    records: List[CanonicalRecord]
    total: int
    page: int
    limit: int

    def to_response(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "results": [record.to_response() for record in self.records],
        }


class QueryExecutor:
    """Runs predicates against the store"""

    def __init__(self, store: CVEStore):
        self.store = store

    def execute(self, predicate: Predicate, sort: Optional[str] = None,
                page: int = 1, limit: Optional[int] = DEFAULT_LIMIT) -> QueryPage:
        limit = effective_limit(limit)
        page = max(1, page)
        skip = (page - 1) * limit
        sort = sort or DEFAULT_SORT

        logger.debug(f"Query {predicate!r} sort={sort} skip={skip} limit={limit}")
        records = self.store.find(predicate, sort=sort, skip=skip, limit=limit)
        total = self.store.count(predicate)
        return QueryPage(records=records, total=total, page=page, limit=limit)

    def search(self, query: ValidatedQuery) -> QueryPage:
        """Compile and execute a validated query"""
        return self.execute(compile_filter(query), sort=query.sort, page=query.page, limit=query.limit)

    def get(self, cve_id: str) -> CanonicalRecord:
        record = self.store.get(cve_id)
        if record is None:
            raise NotFoundError(cve_id)
        return record
