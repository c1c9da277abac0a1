"""Unit tests for NVD item normalization."""

from datetime import datetime, timezone

import pytest

from conftest import make_item, v2_metric, v31_metric
from cvemirror.core.models import ScoreSlot
from cvemirror.core.normalizer import NO_DESCRIPTION, normalize, select_description
from cvemirror.utils.error_handler import RecordError


class TestScoreSelection:
    def test_prefers_v31_over_v30(self):
        item = make_item(metrics={
            "cvssMetricV30": [{"cvssData": {"baseScore": 5.0, "baseSeverity": "MEDIUM",
                                            "vectorString": "CVSS:3.0/AV:L"}}],
            "cvssMetricV31": [v31_metric(9.8)],
        })

        record = normalize(item)

        assert record.v3.base_score == 9.8
        assert record.v3.severity == "CRITICAL"
        assert record.v3.vector.startswith("CVSS:3.1/")

    def test_falls_back_to_v30(self):
        item = make_item(metrics={
            "cvssMetricV30": [{"cvssData": {"baseScore": 5.0, "baseSeverity": "MEDIUM"}}],
        })

        record = normalize(item)

        assert record.v3.base_score == 5.0
        assert record.v3.vector is None

    def test_uses_first_entry_of_list(self):
        item = make_item(metrics={"cvssMetricV31": [v31_metric(7.5, "HIGH"), v31_metric(3.1, "LOW")]})

        assert normalize(item).v3.base_score == 7.5

    def test_v2_severity_comes_from_metric_wrapper(self):
        metric = v2_metric(6.8, severity="MEDIUM")
        metric["cvssData"]["baseSeverity"] = "IGNORED"

        record = normalize(make_item(metrics={"cvssMetricV2": [metric]}))

        assert record.v2.base_score == 6.8
        assert record.v2.severity == "MEDIUM"

    def test_no_metrics_leaves_both_slots_unset(self):
        record = normalize(make_item(metrics={}))

        assert record.v3 is None
        assert record.v2 is None
        assert "score" not in record.to_document()

    def test_non_numeric_score_leaves_slot_unset(self):
        item = make_item(metrics={
            "cvssMetricV31": [{"cvssData": {"baseScore": "high"}}],
            "cvssMetricV2": [v2_metric(4.3)],
        })

        record = normalize(item)

        assert record.v3 is None
        assert record.v2.base_score == 4.3


class TestDescription:
    def test_english_selected_regardless_of_position(self):
        descriptions = [
            {"lang": "es", "value": "Una vulnerabilidad"},
            {"lang": "fr", "value": "Une vulnérabilité"},
            {"lang": "en", "value": "A vulnerability"},
        ]

        assert select_description(descriptions) == "A vulnerability"

    def test_missing_english_uses_fallback(self):
        assert select_description([{"lang": "es", "value": "Una vulnerabilidad"}]) == NO_DESCRIPTION

    def test_missing_list_uses_fallback(self):
        record = normalize(make_item(description=None))

        assert record.description == NO_DESCRIPTION


class TestRecordShape:
    def test_timestamps_are_utc(self):
        record = normalize(make_item(published="2022-12-31T23:59:59.500"))

        assert record.published == datetime(2022, 12, 31, 23, 59, 59, 500000, tzinfo=timezone.utc)
        assert record.to_document()["published"] == "2022-12-31T23:59:59.500Z"

    def test_missing_id_raises_record_error(self):
        item = make_item()
        del item["cve"]["id"]

        with pytest.raises(RecordError):
            normalize(item)

    def test_bad_timestamp_raises_record_error(self):
        with pytest.raises(RecordError) as exc_info:
            normalize(make_item(cve_id="CVE-2024-1111", last_modified="yesterday"))

        assert exc_info.value.cve_id == "CVE-2024-1111"

    def test_response_shows_missing_vector_as_placeholder(self):
        item = make_item(metrics={"cvssMetricV2": [{"baseSeverity": "LOW", "cvssData": {"baseScore": 2.1}}]})

        response = normalize(item).to_response()

        assert response["score"]["v2"] == {"baseScore": 2.1, "severity": "LOW", "vector": "N/A"}

    def test_response_keeps_real_vector_and_document_omits_placeholder(self):
        record = normalize(make_item(metrics={"cvssMetricV31": [v31_metric(9.8)]}))

        assert record.to_response()["score"]["v3"]["vector"] == record.v3.vector
        assert record.to_response()["score"]["v3"]["vector"] != "N/A"
        assert "vector" not in ScoreSlot(5.0).to_document()

    @pytest.mark.parametrize("vector, shown", [
        (None, "N/A"),
        ("", "N/A"),
        ("AV:N/AC:L/Au:N/C:P/I:P/A:P", "AV:N/AC:L/Au:N/C:P/I:P/A:P"),
    ])
    def test_display_vector(self, vector, shown):
        assert ScoreSlot(5.0, "MEDIUM", vector).display_vector == shown
