#!/usr/bin/env python3
"""
Health check utilities for CVE Mirror
Provides health monitoring and status reporting
"""
import os
import time
import psutil
import logging
from datetime import datetime
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

from cvemirror import __version__
from cvemirror.core.scheduler import SyncScheduler
from cvemirror.core.storage import CVEStore
from cvemirror.core.sync_engine import SyncEngine
from cvemirror.utils.config import Config, get_config
from cvemirror.utils.error_handler import StorageError, get_error_summary

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"


@dataclass
class HealthStatus:
    """Health status information"""
    status: str  # "healthy", "degraded", "unhealthy"
    timestamp: str
    uptime: float
    version: str
    checks: Dict[str, Any]


def _check(status: str, message: str, **details: Any) -> Dict[str, Any]:
    return {"status": status, "message": message, "details": details}


class HealthChecker:
    """Health checks over the store, the sync engine and the host"""

    def __init__(self, store: CVEStore, engine: Optional[SyncEngine] = None,
                 scheduler: Optional[SyncScheduler] = None,
                 config: Optional[Config] = None):
        self.store = store
        self.engine = engine
        self.scheduler = scheduler
        self.config = config or get_config()
        self.start_time = time.time()

    def get_health_status(self) -> HealthStatus:
        """Get comprehensive health status"""
        checks = {
            "database": self._check_database_health(),
            "sync": self._check_sync_health(),
            "memory": self._check_memory_usage(),
            "disk_space": self._check_disk_space(),
            "error_rates": self._check_error_rates(),
            "configuration": self._check_configuration(),
        }

        return HealthStatus(
            status=self._determine_overall_status(checks),
            timestamp=datetime.now().isoformat(),
            uptime=time.time() - self.start_time,
            version=__version__,
            checks=checks
        )

    def _check_database_health(self) -> Dict[str, Any]:
        if not self.store.is_connected:
            return _check(UNHEALTHY, "CVE store is not connected", path=self.store.db_path)
        try:
            stats = self.store.get_stats()
        except StorageError as e:
            return _check(UNHEALTHY, f"Database check failed: {e}", path=self.store.db_path)

        if stats["records"] == 0:
            return _check(DEGRADED, "Database is connected but holds no CVEs", **stats)
        return _check(HEALTHY, f"Database holds {stats['records']} CVEs", **stats)

    def _check_sync_health(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {}
        if self.scheduler is not None:
            details["scheduler_running"] = self.scheduler.running
            details["next_run"] = self.scheduler.next_run_time()

        last_run = self.engine.last_run if self.engine else None
        if last_run is None:
            return _check(HEALTHY, "No sync has run in this process", **details)

        details["last_run"] = last_run.to_dict()
        if last_run.status == "failed":
            return _check(DEGRADED, f"Last {last_run.mode} sync failed: {last_run.error}", **details)
        return _check(HEALTHY, f"Last {last_run.mode} sync {last_run.status}", **details)

    def _check_memory_usage(self) -> Dict[str, Any]:
        try:
            process_memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
            system_memory = psutil.virtual_memory()
        except psutil.Error as e:
            return _check(UNHEALTHY, f"Memory check failed: {e}")

        percent = system_memory.percent
        if percent > 90:
            status, message = UNHEALTHY, f"System memory usage critical: {percent:.1f}%"
        elif percent > 80:
            status, message = DEGRADED, f"System memory usage high: {percent:.1f}%"
        else:
            status, message = HEALTHY, f"Memory usage normal: {percent:.1f}%"

        return _check(
            status, message,
            process_memory_mb=round(process_memory_mb, 2),
            system_memory_percent=round(percent, 2),
            available_memory_gb=round(system_memory.available / 1024 / 1024 / 1024, 2)
        )

    def _check_disk_space(self) -> Dict[str, Any]:
        directory = "."
        if self.store.db_path != ":memory:":
            directory = os.path.dirname(os.path.abspath(self.store.db_path))
        try:
            disk_usage = psutil.disk_usage(directory)
        except (psutil.Error, OSError) as e:
            return _check(UNHEALTHY, f"Disk space check failed: {e}")

        free_percent = (disk_usage.free / disk_usage.total) * 100
        if free_percent < 5:
            status, message = UNHEALTHY, f"Disk space critical: {free_percent:.1f}% free"
        elif free_percent < 15:
            status, message = DEGRADED, f"Disk space low: {free_percent:.1f}% free"
        else:
            status, message = HEALTHY, f"Disk space adequate: {free_percent:.1f}% free"

        return _check(
            status, message,
            free_percent=round(free_percent, 2),
            free_gb=round(disk_usage.free / 1024 / 1024 / 1024, 2)
        )

    def _check_error_rates(self) -> Dict[str, Any]:
        summary = get_error_summary()
        total = summary.get('total_errors', 0)
        storage_errors = summary.get('errors_by_category', {}).get('storage_error', 0)

        if storage_errors > 0:
            return _check(DEGRADED, f"Storage errors recorded: {storage_errors}", **summary)
        if total > 100:
            return _check(DEGRADED, f"Total error count high: {total}", **summary)
        return _check(HEALTHY, f"Error rates normal: {total} total errors", **summary)

    def _check_configuration(self) -> Dict[str, Any]:
        if self.config.validate():
            return _check(HEALTHY, "Configuration is valid")
        return _check(UNHEALTHY, "Configuration validation failed")

    def _determine_overall_status(self, checks: Dict[str, Any]) -> str:
        """Determine overall health status from individual checks"""
        statuses = [check.get('status') for check in checks.values()]

        if UNHEALTHY in statuses:
            return UNHEALTHY
        if DEGRADED in statuses:
            return DEGRADED
        return HEALTHY

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self.get_health_status())

    def endpoint(self) -> Dict[str, Any]:
        """Health payload plus HTTP status: degraded still serves, unhealthy is 503"""
        status = self.as_dict()
        return {
            'status_code': 503 if status['status'] == UNHEALTHY else 200,
            'data': status
        }
