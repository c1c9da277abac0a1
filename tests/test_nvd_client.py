"""Unit tests for the NVD upstream client."""

from unittest.mock import MagicMock

import pytest
import requests

from cvemirror.core.nvd_client import NVDClient
from cvemirror.utils.error_handler import UpstreamError
from cvemirror.utils.rate_limiter import SlidingWindowRateLimiter

BASE_URL = "https://services.nvd.nist.gov/rest/json/cves/2.0"


def _session(payload=None, status_code=200):
    response = MagicMock(spec=requests.Response)
    response.ok = 200 <= status_code < 400
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {"vulnerabilities": [], "totalResults": 0}

    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.get.return_value = response
    return session


class TestFetchPage:
    def test_sends_paging_params_and_timeout(self, config):
        session = _session({"vulnerabilities": [{"cve": {"id": "CVE-2024-0001"}}], "totalResults": 1})
        client = NVDClient(config, session=session, use_rate_limit=False)

        page = client.fetch_page(200, 100)

        session.get.assert_called_once_with(
            BASE_URL, params={"startIndex": 200, "resultsPerPage": 100}, timeout=30
        )
        assert page.total_results == 1
        assert page.start_index == 200
        assert page.vulnerabilities == [{"cve": {"id": "CVE-2024-0001"}}]

    def test_sends_modification_window(self, config):
        session = _session()
        client = NVDClient(config, session=session, use_rate_limit=False)

        client.fetch_page(0, 100, last_mod_start="2024-01-14T12:00:00.000Z",
                          last_mod_end="2024-01-15T12:00:00.000Z")

        params = session.get.call_args.kwargs["params"]
        assert params["lastModStartDate"] == "2024-01-14T12:00:00.000Z"
        assert params["lastModEndDate"] == "2024-01-15T12:00:00.000Z"

    def test_missing_vulnerabilities_is_empty_page(self, config):
        client = NVDClient(config, session=_session({"totalResults": 0}), use_rate_limit=False)

        assert client.fetch_page(0, 100).vulnerabilities == []

    def test_api_key_header(self, config, monkeypatch):
        monkeypatch.setenv("NVD_API_KEY", "secret")
        session = _session()

        client = NVDClient(config, session=session, use_rate_limit=False)

        assert session.headers["apiKey"] == "secret"
        assert client.api_key == "secret"

    def test_no_api_key_header_without_env(self, config):
        session = _session()

        NVDClient(config, session=session, use_rate_limit=False)

        assert "apiKey" not in session.headers


class TestErrors:
    def test_timeout_maps_to_upstream_error(self, config):
        session = _session()
        session.get.side_effect = requests.exceptions.Timeout("read timed out")
        client = NVDClient(config, session=session, use_rate_limit=False)

        with pytest.raises(UpstreamError, match="timed out"):
            client.fetch_page(0, 100)

    def test_connection_error_maps_to_upstream_error(self, config):
        session = _session()
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        client = NVDClient(config, session=session, use_rate_limit=False)

        with pytest.raises(UpstreamError):
            client.fetch_page(0, 100)

    def test_http_error_status(self, config):
        client = NVDClient(config, session=_session(status_code=503), use_rate_limit=False)

        with pytest.raises(UpstreamError) as exc_info:
            client.fetch_page(0, 100)

        assert exc_info.value.status_code == 503

    def test_invalid_json(self, config):
        session = _session()
        session.get.return_value.json.side_effect = ValueError("Expecting value")
        client = NVDClient(config, session=session, use_rate_limit=False)

        with pytest.raises(UpstreamError, match="invalid JSON"):
            client.fetch_page(0, 100)

    def test_non_numeric_total(self, config):
        client = NVDClient(config, session=_session({"totalResults": "many"}), use_rate_limit=False)

        with pytest.raises(UpstreamError):
            client.fetch_page(0, 100)


class TestRateLimit:
    def test_waits_on_limiter_before_request(self, config):
        limiter = MagicMock(spec=SlidingWindowRateLimiter)
        client = NVDClient(config, session=_session(), rate_limiter=limiter)

        client.fetch_page(0, 100)

        limiter.wait.assert_called_once_with("nvd")

    def test_default_limiter_uses_keyless_budget(self, config):
        client = NVDClient(config, session=_session())

        assert client.rate_limiter.max_calls == 5
        assert client.rate_limiter.window_size == 30

    def test_disabled_limiter(self, config):
        assert NVDClient(config, session=_session(), use_rate_limit=False).rate_limiter is None
