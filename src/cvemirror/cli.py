#!/usr/bin/env python3
"""
CVE Mirror - Main Entry Point
Sync the NVD feed into a local store and serve queries over it
"""
import sys
import argparse
import logging
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from cvemirror.core.models import PageResult
from cvemirror.core.nvd_client import NVDClient
from cvemirror.core.query import QueryExecutor
from cvemirror.core.scheduler import SyncScheduler, seed_if_empty
from cvemirror.core.storage import CVEStore
from cvemirror.core.sync_engine import SyncEngine, SyncRun
from cvemirror.monitoring.health_check import HealthChecker
from cvemirror.utils.config import Config, reset_config
from cvemirror.utils.error_handler import CVEMirrorError, ConfigurationError, get_error_handler

logger = logging.getLogger(__name__)


class SyncProgress:
    """tqdm bar fed by the sync engine after every page"""

    def __init__(self, unit: str = "CVE"):
        self.unit = unit
        self.bar: Optional[tqdm] = None

    def __call__(self, run: SyncRun, page: PageResult) -> None:
        if self.bar is None:
            self.bar = tqdm(total=page.total_results, unit=self.unit, desc=f"{run.mode} sync")
        self.bar.update(len(page.vulnerabilities))
        self.bar.set_postfix(processed=run.processed, skipped=run.skipped)

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None


def _load_config(args) -> Config:
    config = Config(args.config)
    if args.verbose:
        config.set('logging.level', 'DEBUG')
    reset_config(config)
    config.setup_logging()
    get_error_handler()
    if not config.validate():
        raise ConfigurationError(f"Invalid configuration in {config.config_file}")
    return config


def _open_store(config: Config) -> CVEStore:
    return CVEStore(config.get_storage_path()).connect()


def cmd_init(args, config: Config) -> int:
    """Create the working directories and an empty database"""
    storage_path = Path(config.get_storage_path())
    for directory in (storage_path.parent, Path("logs")):
        directory.mkdir(parents=True, exist_ok=True)
        print(f"[OK] {directory}")

    with CVEStore(str(storage_path)):
        print(f"[OK] database {storage_path}")

    if args.write_config and not Path(config.config_file).exists():
        config.save()
        print(f"[OK] configuration {config.config_file}")
    return 0


def _run_sync(args, config: Config, incremental: bool) -> int:
    progress = None if args.no_progress else SyncProgress()
    store = _open_store(config)
    client = NVDClient(config)
    try:
        engine = SyncEngine(client, store,
                            page_size=config.get('api.nvd.results_per_page', 100),
                            progress=progress)
        if incremental:
            processed = engine.incremental_sync(args.hours)
        else:
            processed = engine.full_sync(args.pages)
    finally:
        if progress is not None:
            progress.close()
        client.close()
        store.close()

    run = engine.last_run
    print(f"{run.mode} sync {run.status}: {processed} processed, {run.skipped} skipped, "
          f"{run.pages} page(s) in {run.duration:.2f}s")
    return 0


def cmd_full_sync(args, config: Config) -> int:
    return _run_sync(args, config, incremental=False)


def cmd_incremental_sync(args, config: Config) -> int:
    return _run_sync(args, config, incremental=True)


def cmd_serve(args, config: Config) -> int:
    """Seed an empty store, start the scheduler and serve the API"""
    from cvemirror.monitoring.web_interface import start_web_interface

    store = _open_store(config)
    client = NVDClient(config)
    engine = SyncEngine(client, store, page_size=config.get('api.nvd.results_per_page', 100))
    scheduler = SyncScheduler(
        engine,
        cron=config.get('sync.schedule', '30 0 * * *'),
        hours=config.get('sync.incremental_hours', 24),
    )

    try:
        if not args.no_seed:
            try:
                seed_if_empty(engine, store, config.get('sync.seed_pages', 5))
            except CVEMirrorError as e:
                logger.error(f"Initial seed failed, serving what is stored: {e}")

        if not args.no_scheduler:
            scheduler.start()

        start_web_interface(
            QueryExecutor(store),
            HealthChecker(store, engine=engine, scheduler=scheduler, config=config),
            host=args.host or config.get('web.host', 'localhost'),
            port=args.port or config.get('web.port', 5000),
        )
    finally:
        scheduler.stop()
        client.close()
        store.close()
    return 0


def cmd_status(args, config: Config) -> int:
    with _open_store(config) as store:
        stats = store.get_stats()

    print("CVE Mirror Status:")
    print("=" * 40)
    print(f"Database: {stats['path']}")
    print(f"Records: {stats['records']}")
    print(f"Newest lastModified: {stats['newest_last_modified'] or 'Never'}")
    print(f"Upstream: {config.get('api.nvd.base_url')}")
    print(f"API key: {'configured' if config.get_api_key('nvd') else 'not set'}")
    print(f"Schedule: {config.get('sync.schedule')} (last {config.get('sync.incremental_hours')}h)")
    return 0


def cmd_health_check(args, config: Config) -> int:
    with _open_store(config) as store:
        health_status = HealthChecker(store, config=config).as_dict()

    print("Health Check Results:")
    print("=" * 40)
    print(f"Status: {health_status['status']}")
    print(f"Version: {health_status['version']}")

    if health_status['status'] != 'healthy':
        print("\nIssues found:")
        for check_name, check_data in health_status['checks'].items():
            if check_data['status'] != 'healthy':
                print(f"  - {check_name}: {check_data['message']}")

    return 0 if health_status['status'] != 'unhealthy' else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cvemirror',
        description='CVE Mirror - local mirror and query API for the NVD CVE feed',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cvemirror init                       # Create database/ and logs/
  cvemirror full-sync --pages 5        # Fetch the first 5 pages of the feed
  cvemirror incremental-sync --hours 48
  cvemirror serve --port 9000          # Seed, schedule and serve the API
  cvemirror status
  cvemirror health-check
        """
    )
    parser.add_argument('--config', '-c', default=None,
                        help='Path to the JSON configuration file')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    init_parser = subparsers.add_parser('init', help='Create working directories and the database')
    init_parser.add_argument('--write-config', action='store_true',
                             help='Write the effective configuration to the config file')
    init_parser.set_defaults(func=cmd_init)

    full_parser = subparsers.add_parser('full-sync', help='Run a bounded full sync')
    full_parser.add_argument('--pages', type=int, default=1,
                             help='Maximum number of pages to fetch (default: 1)')
    full_parser.add_argument('--no-progress', action='store_true', help='Disable the progress bar')
    full_parser.set_defaults(func=cmd_full_sync)

    incremental_parser = subparsers.add_parser('incremental-sync', help='Sync recently modified CVEs')
    incremental_parser.add_argument('--hours', type=int, default=24,
                                    help='Size of the modification window in hours (default: 24)')
    incremental_parser.add_argument('--no-progress', action='store_true', help='Disable the progress bar')
    incremental_parser.set_defaults(func=cmd_incremental_sync)

    serve_parser = subparsers.add_parser('serve', help='Serve the query API with scheduled syncs')
    serve_parser.add_argument('--host', default=None, help='Host to bind to')
    serve_parser.add_argument('--port', type=int, default=None, help='Port to bind to')
    serve_parser.add_argument('--no-seed', action='store_true', help='Skip the initial seed of an empty store')
    serve_parser.add_argument('--no-scheduler', action='store_true', help='Do not schedule incremental syncs')
    serve_parser.set_defaults(func=cmd_serve)

    status_parser = subparsers.add_parser('status', help='Show store status')
    status_parser.set_defaults(func=cmd_status)

    health_parser = subparsers.add_parser('health-check', help='Run health check and exit')
    health_parser.set_defaults(func=cmd_health_check)

    return parser


def main(argv=None) -> int:
    """Main entry point for CVE Mirror"""
    args = build_parser().parse_args(argv)

    try:
        config = _load_config(args)
        return args.func(args, config)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except Exception as e:
        logger.critical(f"{args.command} failed: {e}")
        print(f"\n{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
