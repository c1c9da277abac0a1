"""
SQLite document store for CVE records
"""
import json
import os
import sqlite3
import threading
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from cvemirror.core.filters import (
    FIELD_DESCRIPTION, FIELD_ID, FIELD_LAST_MODIFIED, FIELD_PUBLISHED,
    FIELD_V2_SCORE, FIELD_V3_SCORE,
    And, Contains, Eq, MatchAll, Or, Predicate, Prefix, Range,
)
from cvemirror.core.models import CanonicalRecord, format_timestamp
from cvemirror.utils.error_handler import StorageError

logger = logging.getLogger(__name__)

COLUMNS = {
    FIELD_ID: "id",
    FIELD_DESCRIPTION: "description",
    FIELD_PUBLISHED: "published",
    FIELD_LAST_MODIFIED: "last_modified",
    FIELD_V3_SCORE: "v3_score",
    FIELD_V2_SCORE: "v2_score",
}

SORTABLE_FIELDS = frozenset(COLUMNS)


def _icontains(value: Optional[str], text: Optional[str]) -> int:
    if value is None or text is None:
        return 0
    return int(text.casefold() in value.casefold())


def _istartswith(value: Optional[str], prefix: Optional[str]) -> int:
    if value is None or prefix is None:
        return 0
    return int(value.casefold().startswith(prefix.casefold()))


def _column(field: str) -> str:
    try:
        return COLUMNS[field]
    except KeyError:
        raise ValueError(f"Field is not queryable: {field}") from None


def _param(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


def compile_sql(predicate: Predicate) -> Tuple[str, List[Any]]:
    """Translate a predicate tree into a WHERE clause and its parameters"""
    if isinstance(predicate, MatchAll):
        return "1", []

    if isinstance(predicate, Eq):
        return f"{_column(predicate.field)} = ?", [_param(predicate.value)]

    if isinstance(predicate, Contains):
        return f"icontains({_column(predicate.field)}, ?)", [predicate.text]

    if isinstance(predicate, Prefix):
        return f"istartswith({_column(predicate.field)}, ?)", [predicate.prefix]

    if isinstance(predicate, Range):
        column = _column(predicate.field)
        clauses = []
        params: List[Any] = []
        if predicate.required:
            clauses.append(f"{column} IS NOT NULL")
        if predicate.gte is not None:
            clauses.append(f"{column} >= ?")
            params.append(_param(predicate.gte))
        if predicate.lt is not None:
            clauses.append(f"{column} < ?")
            params.append(_param(predicate.lt))
        if not clauses:
            clauses.append(f"{column} IS NOT NULL")
        return "(" + " AND ".join(clauses) + ")", params

    if isinstance(predicate, (And, Or)):
        if not predicate.terms:
            return ("1" if isinstance(predicate, And) else "0"), []
        joiner = " AND " if isinstance(predicate, And) else " OR "
        parts = []
        params = []
        for term in predicate.terms:
            sql, term_params = compile_sql(term)
            parts.append(sql)
            params.extend(term_params)
        return "(" + joiner.join(parts) + ")", params

    raise ValueError(f"Unsupported predicate: {predicate!r}")


def parse_sort(sort_key: Optional[str]) -> Tuple[str, str]:
    """'-published' -> ('published', 'DESC'); unset sorts newest-published first"""
    sort_key = sort_key or "-published"
    descending = sort_key.startswith("-")
    field = sort_key[1:] if descending else sort_key
    return _column(field), "DESC" if descending else "ASC"


class CVEStore:
    """SQLite-backed store reached through upsert/find/count"""

    def __init__(self, db_path: str = "database/cves.db"):
        self.db_path = db_path
        self.connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def connect(self) -> "CVEStore":
        """Open the database and make sure the schema exists"""
        with self._lock:
            if self.connection is not None:
                return self
            try:
                if self.db_path != ":memory:":
                    directory = os.path.dirname(self.db_path)
                    if directory:
                        os.makedirs(directory, exist_ok=True)
                self.connection = sqlite3.connect(self.db_path, check_same_thread=False)
                if self.db_path != ":memory:":
                    self.connection.execute("PRAGMA journal_mode=WAL")
                self.connection.execute("PRAGMA synchronous=NORMAL")
                self.connection.create_function("icontains", 2, _icontains, deterministic=True)
                self.connection.create_function("istartswith", 2, _istartswith, deterministic=True)
                self._create_tables()
            except (sqlite3.Error, OSError) as e:
                self.connection = None
                raise StorageError(f"Cannot open database {self.db_path}: {e}", operation="connect") from e
            logger.info(f"Connected to CVE store at {self.db_path}")
            return self

    def close(self) -> None:
        with self._lock:
            if self.connection is not None:
                self.connection.close()
                self.connection = None
                logger.info("CVE store closed")

    def __enter__(self) -> "CVEStore":
        return self.connect()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_connected(self) -> bool:
        return self.connection is not None

    def _create_tables(self):
        cursor = self.connection.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS cves (
                id TEXT PRIMARY KEY,
                published TEXT NOT NULL,
                last_modified TEXT NOT NULL,
                description TEXT NOT NULL,
                v3_score REAL,
                v2_score REAL,
                document TEXT NOT NULL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_cves_published ON cves(published)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_cves_last_modified ON cves(last_modified)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_cves_v3_score ON cves(v3_score)")
        self.connection.commit()

    def _require_connection(self, operation: str) -> sqlite3.Connection:
        if self.connection is None:
            raise StorageError("CVE store is not connected", operation=operation)
        return self.connection

    def upsert(self, record: CanonicalRecord) -> None:
        """Insert the record, or replace every column of the stored one with the same id"""
        document = record.to_document()
        with self._lock:
            connection = self._require_connection("upsert")
            try:
                connection.execute("""
                    INSERT INTO cves (id, published, last_modified, description, v3_score, v2_score, document)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        published = excluded.published,
                        last_modified = excluded.last_modified,
                        description = excluded.description,
                        v3_score = excluded.v3_score,
                        v2_score = excluded.v2_score,
                        document = excluded.document
                """, (
                    record.id,
                    document["published"],
                    document["lastModified"],
                    record.description,
                    record.v3.base_score if record.v3 else None,
                    record.v2.base_score if record.v2 else None,
                    json.dumps(document),
                ))
                connection.commit()
            except sqlite3.Error as e:
                connection.rollback()
                raise StorageError(f"Failed to upsert {record.id}: {e}", operation="upsert") from e

    def find(self, predicate: Predicate, sort: Optional[str] = None,
             skip: int = 0, limit: Optional[int] = None) -> List[CanonicalRecord]:
        where, params = compile_sql(predicate)
        column, direction = parse_sort(sort)
        sql = f"SELECT document FROM cves WHERE {where} ORDER BY {column} {direction}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params = params + [limit, skip]
        elif skip:
            sql += " LIMIT -1 OFFSET ?"
            params = params + [skip]

        with self._lock:
            connection = self._require_connection("find")
            try:
                rows = connection.execute(sql, params).fetchall()
            except (sqlite3.Error, OverflowError) as e:
                raise StorageError(f"Query failed: {e}", operation="find") from e
        return [CanonicalRecord.from_document(json.loads(row[0])) for row in rows]

    def count(self, predicate: Optional[Predicate] = None) -> int:
        where, params = compile_sql(predicate or MatchAll())
        with self._lock:
            connection = self._require_connection("count")
            try:
                row = connection.execute(f"SELECT COUNT(*) FROM cves WHERE {where}", params).fetchone()
            except (sqlite3.Error, OverflowError) as e:
                raise StorageError(f"Count failed: {e}", operation="count") from e
        return int(row[0])

    def get(self, cve_id: str) -> Optional[CanonicalRecord]:
        with self._lock:
            connection = self._require_connection("get")
            try:
                row = connection.execute("SELECT document FROM cves WHERE id = ?", (cve_id,)).fetchone()
            except (sqlite3.Error, OverflowError) as e:
                raise StorageError(f"Lookup of {cve_id} failed: {e}", operation="get") from e
        if row is None:
            return None
        return CanonicalRecord.from_document(json.loads(row[0]))

    def get_stats(self) -> Dict[str, Any]:
        """Record count and newest modification time, for status reporting"""
        with self._lock:
            connection = self._require_connection("stats")
            try:
                total, newest = connection.execute(
                    "SELECT COUNT(*), MAX(last_modified) FROM cves"
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Stats query failed: {e}", operation="stats") from e
        return {
            "path": self.db_path,
            "records": int(total),
            "newest_last_modified": newest,
        }
