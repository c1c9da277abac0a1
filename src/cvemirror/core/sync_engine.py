#!/usr/bin/env python3
"""
Sync engine
Full and incremental synchronization of the local store against the NVD feed
"""
import time
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, Optional

from cvemirror.core.models import PageResult, format_timestamp
from cvemirror.core.normalizer import normalize
from cvemirror.core.nvd_client import NVDClient
from cvemirror.core.storage import CVEStore
from cvemirror.monitoring.metrics import get_mirror_metrics
from cvemirror.utils.error_handler import RecordError, get_logger, log_operation

PAGE_SIZE = 100

MODE_FULL = "full"
MODE_INCREMENTAL = "incremental"


@dataclass
class SyncRun:
    """Bookkeeping for one sync run"""
    mode: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: str = "running"
    processed: int = 0
    skipped: int = 0
    pages: int = 0
    total_results: Optional[int] = None
    error: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['started_at'] = self.started_at.isoformat()
        data['finished_at'] = self.finished_at.isoformat() if self.finished_at else None
        data['duration'] = self.duration
        return data


ProgressCallback = Callable[[SyncRun, PageResult], None]


class SyncEngine:
    """Pulls pages from the upstream client and upserts every normalized record"""

    def __init__(self, client: NVDClient, store: CVEStore,
                 page_size: int = PAGE_SIZE,
                 progress: Optional[ProgressCallback] = None):
        self.client = client
        self.store = store
        self.page_size = page_size
        self.progress = progress
        self.last_run: Optional[SyncRun] = None
        self.logger = get_logger('sync_engine')

    @contextmanager
    def _tracked_run(self, mode: str) -> Iterator[SyncRun]:
        run = SyncRun(mode=mode, started_at=datetime.now(timezone.utc))
        self.last_run = run
        metrics = get_mirror_metrics()
        try:
            yield run
        except Exception as e:
            run.status = "failed"
            run.error = str(e)
            metrics['sync_runs_total'].inc(1, mode=mode, status="failed")
            raise
        else:
            run.status = "succeeded"
            metrics['sync_runs_total'].inc(1, mode=mode, status="succeeded")
            metrics['last_sync_timestamp'].set(time.time(), mode=mode)
        finally:
            run.finished_at = datetime.now(timezone.utc)
            metrics['cves_upserted_total'].inc(run.processed, mode=mode)
            metrics['cves_skipped_total'].inc(run.skipped, mode=mode)

    def _ingest_page(self, page: PageResult, run: SyncRun) -> None:
        """Normalize and upsert every item of a page, in page order"""
        for item in page.vulnerabilities:
            try:
                record = normalize(item)
            except RecordError as e:
                run.skipped += 1
                self.logger.warning(f"Skipping upstream item: {e}")
                continue
            self.store.upsert(record)
            run.processed += 1

        run.pages += 1
        run.total_results = page.total_results
        if self.progress is not None:
            self.progress(run, page)

    @log_operation("full sync", "sync_engine")
    def full_sync(self, max_pages: int = 1) -> int:
        """
        Walk the whole feed from offset 0, at most max_pages pages

        Stops early once the upstream total has been covered.
        Returns the number of records upserted.
        """
        self.logger.info(f"Starting full sync ({max_pages} page(s))...")
        with self._tracked_run(MODE_FULL) as run:
            for page_number in range(max_pages):
                start_index = page_number * self.page_size
                self.logger.info(f"Fetching page {page_number + 1}, startIndex: {start_index}")

                page = self.client.fetch_page(start_index, self.page_size)
                self._ingest_page(page, run)
                self.logger.info(f"Processed {run.processed} CVEs so far")

                if start_index + self.page_size >= page.total_results:
                    break

        self.logger.info(f"Full sync complete: {run.processed} CVEs processed")
        return run.processed

    @log_operation("incremental sync", "sync_engine")
    def incremental_sync(self, hours: int = 24, now: Optional[datetime] = None) -> int:
        """
        Fetch every record modified in [now - hours, now]

        Pages until the offset reaches the upstream total; there is no page cap.
        Returns the number of records upserted.
        """
        now = now or datetime.now(timezone.utc)
        window_end = format_timestamp(now)
        window_start = format_timestamp(now - timedelta(hours=hours))

        self.logger.info(f"Starting incremental sync (last {hours}h: {window_start} .. {window_end})...")
        with self._tracked_run(MODE_INCREMENTAL) as run:
            start_index = 0
            while True:
                page = self.client.fetch_page(
                    start_index,
                    self.page_size,
                    last_mod_start=window_start,
                    last_mod_end=window_end,
                )
                self._ingest_page(page, run)

                start_index += self.page_size
                if start_index >= page.total_results:
                    break

        self.logger.info(f"Incremental sync complete: {run.processed} CVEs updated")
        return run.processed
