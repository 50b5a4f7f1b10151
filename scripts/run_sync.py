"""
Script to run the Zabbix -> InfluxDB sync, once or as a daemon
"""

import argparse
import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import load_settings
from core.logging import setup_logging
from ingestion.runner import build_sync_runner
from ingestion.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronize Zabbix history into InfluxDB")
    parser.add_argument("--config", help="Path to a TOML configuration file")
    parser.add_argument("--once", action="store_true", help="Run a single sync pass and exit")
    parser.add_argument(
        "--table",
        action="append",
        dest="tables",
        help="History table to sync (repeatable); defaults to ZABBIX_TABLES",
    )
    return parser.parse_args(argv)


async def run_once(runner, tables) -> int:
    results = await runner.run_all(tables)
    for result in results:
        logger.info(f"{result.source_name}: {result.status.value}")
    return 0 if all(r.succeeded for r in results) else 1


async def run_daemon(runner, interval_seconds: int) -> int:
    stop_event = asyncio.Event()

    def _signal_handler(signum):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, _signal_handler, signum)

    scheduler = SyncScheduler(runner, interval_seconds=interval_seconds)
    scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
    return 0


async def main(argv=None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.config)
    setup_logging(settings.LOG_LEVEL)

    runner = build_sync_runner(settings)
    if args.tables:
        runner.tables = args.tables

    try:
        if args.once:
            return await run_once(runner, runner.tables)
        return await run_daemon(runner, settings.SYNC_INTERVAL_SECONDS)
    except Exception as e:
        logger.error(f"Sync daemon error: {str(e)}")
        return 1
    finally:
        await runner.aclose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
