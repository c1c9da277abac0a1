"""Shared fixtures for CVE Mirror tests."""

import json
from typing import Any, Dict, List, Optional

import pytest

from cvemirror.core.models import PageResult
from cvemirror.core.storage import CVEStore
from cvemirror.utils.config import Config, reset_config


def make_item(
    cve_id: str = "CVE-2024-0001",
    published: str = "2024-01-15T10:30:00.000",
    last_modified: str = "2024-01-16T08:00:00.000",
    description: Optional[str] = "A test vulnerability",
    metrics: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build one NVD CVE 2.0 `vulnerabilities[]` item."""
    cve: Dict[str, Any] = {
        "id": cve_id,
        "published": published,
        "lastModified": last_modified,
        "descriptions": [],
        "metrics": metrics or {},
    }
    if description is not None:
        cve["descriptions"] = [{"lang": "en", "value": description}]
    return {"cve": cve}


def v31_metric(score: float, severity: str = "CRITICAL",
               vector: str = "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H") -> Dict[str, Any]:
    return {"cvssData": {"version": "3.1", "baseScore": score,
                         "baseSeverity": severity, "vectorString": vector}}


def v2_metric(score: float, severity: str = "HIGH",
              vector: str = "AV:N/AC:L/Au:N/C:P/I:P/A:P") -> Dict[str, Any]:
    return {"baseSeverity": severity,
            "cvssData": {"version": "2.0", "baseScore": score, "vectorString": vector}}


class FakeNVDClient:
    """Serves canned pages by startIndex and records every call."""

    def __init__(self, items: List[Dict[str, Any]], total_results: Optional[int] = None,
                 fail_at: Optional[int] = None, error: Optional[Exception] = None):
        self.items = items
        self.total_results = len(items) if total_results is None else total_results
        self.fail_at = fail_at
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def fetch_page(self, start_index, results_per_page, last_mod_start=None, last_mod_end=None):
        self.calls.append({
            "start_index": start_index,
            "results_per_page": results_per_page,
            "last_mod_start": last_mod_start,
            "last_mod_end": last_mod_end,
        })
        if self.fail_at is not None and start_index >= self.fail_at:
            raise self.error
        return PageResult(
            vulnerabilities=self.items[start_index:start_index + results_per_page],
            total_results=self.total_results,
            start_index=start_index,
            results_per_page=results_per_page,
        )


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Defaults-only configuration, isolated from the environment."""
    monkeypatch.delenv("NVD_API_KEY", raising=False)
    monkeypatch.delenv("CVEMIRROR_DB_PATH", raising=False)
    config = Config(str(tmp_path / "config.json"))
    reset_config(config)
    yield config
    reset_config(None)


@pytest.fixture
def store():
    with CVEStore(":memory:") as store:
        yield store


@pytest.fixture
def write_config(tmp_path):
    def _write(data: Dict[str, Any]) -> str:
        path = tmp_path / "custom.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)
    return _write
