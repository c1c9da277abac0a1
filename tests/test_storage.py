"""Integration tests for the SQLite CVE store."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from cvemirror.core.filters import (
    FIELD_ID, Eq, MatchAll, ValidatedQuery, compile_filter,
)
from cvemirror.core.models import CanonicalRecord, ScoreSlot
from cvemirror.core.storage import CVEStore, compile_sql, parse_sort
from cvemirror.utils.error_handler import StorageError


def _record(cve_id, published, description="Test", v3=None, v2=None, last_modified=None):
    published_at = datetime.fromisoformat(published).replace(tzinfo=timezone.utc)
    modified_at = (datetime.fromisoformat(last_modified).replace(tzinfo=timezone.utc)
                   if last_modified else published_at)
    return CanonicalRecord(
        id=cve_id,
        published=published_at,
        last_modified=modified_at,
        description=description,
        v3=ScoreSlot(v3, "HIGH", "CVSS:3.1/AV:N") if v3 is not None else None,
        v2=ScoreSlot(v2, "HIGH") if v2 is not None else None,
    )


@pytest.fixture
def seeded(store):
    store.upsert(_record("CVE-2023-9999", "2022-12-15T00:00:00", "Heap overflow in parser", v3=9.8))
    store.upsert(_record("CVE-2021-1234", "2023-02-01T00:00:00", "SQL injection in login", v2=7.5))
    store.upsert(_record("CVE-2022-0001", "2022-06-01T00:00:00", "CPU at 100% on crafted input"))
    store.upsert(_record("CVE-2024-0001", "2024-01-10T00:00:00", "Reflected XSS", v3=6.1, v2=4.3,
                         last_modified="2024-03-09T00:00:00"))
    return store


class TestUpsert:
    def test_reingest_replaces_record_exactly(self, store):
        store.upsert(_record("CVE-2024-0001", "2024-01-10T00:00:00", "Old text", v3=9.8, v2=5.0))
        replacement = _record("CVE-2024-0001", "2024-01-10T00:00:00", "New text", v3=7.0)

        store.upsert(replacement)

        assert store.get("CVE-2024-0001") == replacement
        assert store.get("CVE-2024-0001").v2 is None
        assert store.count() == 1

    def test_get_unknown_returns_none(self, store):
        assert store.get("CVE-0000-0000") is None

    def test_operations_require_connection(self):
        with pytest.raises(StorageError):
            CVEStore(":memory:").count()

    def test_creates_database_file(self, tmp_path):
        db_path = tmp_path / "nested" / "cves.db"

        with CVEStore(str(db_path)) as store:
            store.upsert(_record("CVE-2024-0001", "2024-01-10T00:00:00"))

        with CVEStore(str(db_path)) as store:
            assert store.count() == 1


class TestFind:
    def test_default_sort_is_newest_published_first(self, seeded):
        ids = [r.id for r in seeded.find(MatchAll())]

        assert ids == ["CVE-2024-0001", "CVE-2021-1234", "CVE-2023-9999", "CVE-2022-0001"]

    def test_ascending_sort_and_window(self, seeded):
        records = seeded.find(MatchAll(), sort="id", skip=1, limit=2)

        assert [r.id for r in records] == ["CVE-2022-0001", "CVE-2023-9999"]

    def test_year_matches_by_id_or_publication(self, seeded):
        predicate = compile_filter(ValidatedQuery(year=2023))

        ids = {r.id for r in seeded.find(predicate)}

        assert ids == {"CVE-2023-9999", "CVE-2021-1234"}
        assert seeded.count(predicate) == 2

    def test_keyword_is_case_insensitive_and_literal(self, seeded):
        assert [r.id for r in seeded.find(compile_filter(ValidatedQuery(keyword="sql INJECTION")))] == [
            "CVE-2021-1234"
        ]
        assert [r.id for r in seeded.find(compile_filter(ValidatedQuery(keyword="100%")))] == [
            "CVE-2022-0001"
        ]
        assert seeded.count(compile_filter(ValidatedQuery(keyword="_"))) == 0

    def test_score_filters(self, seeded):
        assert seeded.count(compile_filter(ValidatedQuery(score_min=7.0))) == 2
        assert seeded.count(compile_filter(ValidatedQuery(score_min=7.0, score_ver="v3"))) == 1
        assert seeded.count(compile_filter(ValidatedQuery(score_min=4.0, score_ver="v2"))) == 2

    def test_modified_window(self, seeded):
        now = datetime(2024, 3, 10, tzinfo=timezone.utc)

        records = seeded.find(compile_filter(ValidatedQuery(modified_last_days=7), now=now))

        assert [r.id for r in records] == ["CVE-2024-0001"]

    def test_sql_and_in_memory_evaluation_agree(self, seeded):
        predicate = compile_filter(ValidatedQuery(year=2023, score_min=5.0))
        documents = [r.to_document() for r in seeded.find(MatchAll())]

        expected = {d["id"] for d in documents if predicate.matches(d)}

        assert {r.id for r in seeded.find(predicate)} == expected == {"CVE-2023-9999", "CVE-2021-1234"}

    def test_stats(self, seeded):
        stats = seeded.get_stats()

        assert stats["records"] == 4
        assert stats["newest_last_modified"] == "2024-03-09T00:00:00.000Z"


class TestDriverErrors:
    def test_oversized_offset_is_storage_error(self, seeded):
        with pytest.raises(StorageError) as exc_info:
            seeded.find(MatchAll(), skip=10 ** 20, limit=10)

        assert exc_info.value.operation == "find"
        assert isinstance(exc_info.value.__cause__, OverflowError)

    def test_oversized_offset_without_limit(self, seeded):
        with pytest.raises(StorageError):
            seeded.find(MatchAll(), skip=10 ** 20)

    @pytest.mark.parametrize("call, operation", [
        (lambda s: s.count(), "count"),
        (lambda s: s.get("CVE-2024-0001"), "get"),
    ])
    def test_count_and_get_wrap_overflow(self, store, call, operation):
        connection = MagicMock()
        connection.execute.side_effect = OverflowError("Python int too large to convert to SQLite INTEGER")
        store.connection = connection

        with pytest.raises(StorageError) as exc_info:
            call(store)

        assert exc_info.value.operation == operation


class TestCompileSql:
    def test_eq(self):
        assert compile_sql(Eq(FIELD_ID, "CVE-2024-0001")) == ("id = ?", ["CVE-2024-0001"])

    def test_unknown_sort_field_rejected(self):
        with pytest.raises(ValueError):
            parse_sort("-document")

    def test_parse_sort(self):
        assert parse_sort(None) == ("published", "DESC")
        assert parse_sort("score.v3.baseScore") == ("v3_score", "ASC")
