#!/usr/bin/env python3
"""
NVD CVE 2.0 API client
Fetches one page of vulnerabilities per call with a bounded timeout
"""
from typing import Any, Dict, Optional

import requests  # type: ignore
from requests.adapters import HTTPAdapter

from cvemirror.core.models import PageResult
from cvemirror.monitoring.metrics import track_upstream_metrics
from cvemirror.utils.config import Config, get_config
from cvemirror.utils.error_handler import ErrorContext, UpstreamError, get_logger
from cvemirror.utils.rate_limiter import RateLimitConfig, SlidingWindowRateLimiter


class NVDClient:
    """Thin paginated client for the NVD vulnerability feed. Never retries."""

    def __init__(self, config: Optional[Config] = None,
                 session: Optional[requests.Session] = None,
                 rate_limiter: Optional[SlidingWindowRateLimiter] = None,
                 use_rate_limit: bool = True):
        self.config = config or get_config()
        self.logger = get_logger('nvd_client')

        self.base_url = self.config.get('api.nvd.base_url')
        self.timeout = self.config.get('api.nvd.timeout', 30)
        self.api_key = self.config.get_api_key('nvd')

        self.session = session or self._create_session()
        if self.api_key:
            self.session.headers['apiKey'] = self.api_key

        if rate_limiter is None and use_rate_limit:
            rate_limiter = SlidingWindowRateLimiter.from_config(self._rate_limit_config())
        self.rate_limiter = rate_limiter

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        # max_retries=0: a failed page is reported to the caller, not replayed
        adapter = HTTPAdapter(pool_connections=1, pool_maxsize=2, max_retries=0)
        session.mount('https://', adapter)
        session.mount('http://', adapter)
        session.headers['Accept'] = 'application/json'
        return session

    def _rate_limit_config(self) -> RateLimitConfig:
        key = 'max_requests_with_key' if self.api_key else 'max_requests'
        return RateLimitConfig(
            max_calls=self.config.get(f'api.nvd.rate_limit.{key}', 5),
            window_size=self.config.get('api.nvd.rate_limit.window_seconds', 30),
        )

    @track_upstream_metrics
    def fetch_page(self, start_index: int, results_per_page: int,
                   last_mod_start: Optional[str] = None,
                   last_mod_end: Optional[str] = None) -> PageResult:
        """
        Fetch one page of the feed

        Args:
            start_index: Zero-based result offset
            results_per_page: Page size
            last_mod_start: Optional lower bound of the modification window (ISO)
            last_mod_end: Optional upper bound of the modification window (ISO)

        Returns:
            PageResult with the raw items and upstream totalResults

        Raises:
            UpstreamError: transport failure, timeout, non-2xx status or bad payload
        """
        params: Dict[str, Any] = {
            'startIndex': start_index,
            'resultsPerPage': results_per_page,
        }
        if last_mod_start:
            params['lastModStartDate'] = last_mod_start
        if last_mod_end:
            params['lastModEndDate'] = last_mod_end

        context = ErrorContext(
            operation="fetch_page",
            component="nvd_client",
            additional_data={'params': params}
        )

        if self.rate_limiter is not None:
            self.rate_limiter.wait('nvd')

        self.logger.debug(f"GET {self.base_url} {params}")
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise UpstreamError(f"NVD request timed out after {self.timeout}s: {e}",
                                url=self.base_url, context=context) from e
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"NVD request failed: {e}", url=self.base_url, context=context) from e

        if not response.ok:
            raise UpstreamError(
                f"NVD API returned HTTP {response.status_code}",
                status_code=response.status_code,
                url=self.base_url,
                context=context
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"NVD API returned invalid JSON: {e}",
                                status_code=response.status_code,
                                url=self.base_url, context=context) from e

        if not isinstance(data, dict):
            raise UpstreamError("NVD API returned an unexpected payload",
                                status_code=response.status_code,
                                url=self.base_url, context=context)

        vulnerabilities = data.get('vulnerabilities') or []
        try:
            total_results = int(data.get('totalResults', 0))
        except (TypeError, ValueError) as e:
            raise UpstreamError("NVD API returned a non-numeric totalResults",
                                status_code=response.status_code,
                                url=self.base_url, context=context) from e

        return PageResult(
            vulnerabilities=list(vulnerabilities),
            total_results=total_results,
            start_index=start_index,
            results_per_page=results_per_page,
            raw=data,
        )

    def close(self) -> None:
        self.session.close()
