# ============================================================================
# File: ingestion/runner.py
# Description: Sync orchestrator driving one checkpointed cycle per history table
# ============================================================================
"""
Sync Runner - Orchestrates Checkpoint, Extract, Transform, Load per table.

This module drives the incremental Zabbix -> InfluxDB synchronization:
- Connectivity checks before anything is touched (destination, then source)
- Optimistic checkpoint advance before extraction, with a lookback window
- Lazy row-to-metric mapping feeding batched, retried delivery
- Exact checkpoint rollback when a cycle fails after advancing
- One SyncResult per table; a failing table never stops the others

Cycle states:
    START -> VARIANT_CHECK -> DESTINATION_PING -> CONNECT -> CHECKPOINT_READ
    -> CHECKPOINT_ADVANCE -> EXTRACT -> MAP/BATCH/WRITE -> SUCCESS
    Connectivity failures end in SKIPPED with the checkpoint untouched.
    Failures after the advance end in FAILED with the checkpoint rolled back.

Exposure window:
    The advanced cursor is now - lookback. A row whose clock is older than that
    value but which only becomes visible in Zabbix after the range query ran
    is never extracted by any later cycle. Raise SYNC_LOOKBACK_SECONDS to
    narrow this window at the cost of more duplicates per cycle.
"""

import asyncio
import time
from typing import Callable, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncConnection

from core.config import Settings
from core.exceptions import (
    SyncException,
    CheckpointError,
    DestinationConnectionError,
    SourceConnectionError,
    UnknownTableVariantError,
)
from core.retry import BackoffStrategy, Sleep, backoff_from_name
from ingestion.checkpoint import CheckpointStore, RunHistoryStore, build_checkpoint_store
from ingestion.extractors.zabbix_extractor import ZabbixHistoryExtractor
from ingestion.loaders.batch_writer import BatchWriter, FlushReport
from ingestion.loaders.influx_loader import InfluxLoader
from ingestion.transformers.metric_mapper import MetricMapper
from models.base import HistoryTable, SyncStatus
from schemas.sync import SyncResult
import logging

logger = logging.getLogger(__name__)


class SyncRunner:
    """
    Sync Orchestrator

    Responsibilities:
    - Run one full cycle per history table, sequentially
    - Advance the checkpoint before extraction, roll it back on failure
    - Turn every failure into a FAILED or SKIPPED result
    - Record per-cycle statistics when the checkpoint store keeps them
    """

    def __init__(
        self,
        extractor: ZabbixHistoryExtractor,
        loader: InfluxLoader,
        checkpoints: CheckpointStore,
        tables: Optional[Iterable[str]] = None,
        batch_size: int = 10000,
        max_attempts: int = 5,
        lookback_seconds: int = 50,
        backoff: Optional[BackoffStrategy] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time
    ):
        self.extractor = extractor
        self.loader = loader
        self.checkpoints = checkpoints
        self.tables = list(tables) if tables is not None else [t.value for t in HistoryTable]
        self.lookback_seconds = lookback_seconds
        self.clock = clock
        self.writer = BatchWriter(
            loader,
            batch_size=batch_size,
            max_attempts=max_attempts,
            backoff=backoff,
            sleep=sleep,
        )

    async def sync_table(self, name: str) -> SyncResult:
        """
        Run one cycle for one history table.

        Never raises for cycle-level failures; they are reported in the
        returned SyncResult.
        """
        started = time.monotonic()
        result = SyncResult(source_name=str(getattr(name, "value", name)), status=SyncStatus.RUNNING)
        logger.info(f"Starting sync cycle for {result.source_name}")

        # --------------------------------------------------
        # VARIANT CHECK
        # --------------------------------------------------
        try:
            table = HistoryTable.from_name(name)
        except UnknownTableVariantError as e:
            return await self._finish(result, SyncStatus.FAILED, started, e)

        # --------------------------------------------------
        # CONNECTIVITY
        # --------------------------------------------------
        try:
            await self.loader.ping()
        except DestinationConnectionError as e:
            return await self._finish(result, SyncStatus.SKIPPED, started, e)

        try:
            async with self.extractor.connect() as conn:
                await self._run_cycle(conn, table, result)
        except SourceConnectionError as e:
            return await self._finish(result, SyncStatus.SKIPPED, started, e)
        except Exception as e:
            # Raised outside the cycle body, e.g. while closing the connection
            logger.exception(f"Unexpected error around sync cycle for {table.value}")
            if result.status == SyncStatus.RUNNING:
                return await self._finish(result, SyncStatus.FAILED, started, e)

        return await self._finish(result, result.status, started, None)

    async def _run_cycle(self, conn: AsyncConnection, table: HistoryTable, result: SyncResult) -> None:
        # --------------------------------------------------
        # CHECKPOINT READ + OPTIMISTIC ADVANCE
        # --------------------------------------------------
        try:
            cursor = await self.checkpoints.read(table.value)
            result.cursor_before = cursor

            advanced = max(cursor, int(self.clock()) - self.lookback_seconds)
            await self.checkpoints.write(table.value, advanced)
            result.cursor_after = advanced
        except CheckpointError as e:
            self._mark_failed(result, e)
            return

        logger.info(f"Checkpoint for {table.value} advanced from {cursor} to {advanced}")

        # --------------------------------------------------
        # EXTRACT -> MAP -> BATCH/WRITE
        # --------------------------------------------------
        report = FlushReport()
        try:
            rows = await self.extractor.fetch_rows(conn, table, cursor)
            result.records_extracted = len(rows)

            if rows:
                mapper = MetricMapper(table)
                await self.writer.write_all(mapper.map_all(rows), total=len(rows), report=report)
            else:
                logger.info(f"No new rows in {table.value}")

        except asyncio.CancelledError:
            logger.warning(f"Sync cycle for {table.value} cancelled")
            self._sync_counts(result, report)
            result.status = SyncStatus.FAILED
            result.error_type = "CancelledError"
            result.error = "Sync cycle cancelled"
            await self._rollback(table, cursor, result)
            raise

        except SyncException as e:
            self._sync_counts(result, report)
            self._mark_failed(result, e)
            await self._rollback(table, cursor, result)
            return

        except Exception as e:
            logger.exception(f"Unexpected error in sync cycle for {table.value}")
            self._sync_counts(result, report)
            self._mark_failed(result, e)
            await self._rollback(table, cursor, result)
            return

        self._sync_counts(result, report)
        result.status = SyncStatus.SUCCESS

    async def _rollback(self, table: HistoryTable, cursor: int, result: SyncResult) -> None:
        """Restore the pre-cycle cursor so the failed window is reprocessed"""
        try:
            await self.checkpoints.write(table.value, cursor)
        except CheckpointError as e:
            logger.error(
                f"Checkpoint rollback failed for {table.value}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            result.error = f"{result.error}; rollback failed: {e.message}"
            return

        result.rolled_back = True
        result.cursor_after = cursor
        logger.warning(f"Checkpoint for {table.value} rolled back to {cursor}")

    @staticmethod
    def _sync_counts(result: SyncResult, report: FlushReport) -> None:
        result.records_written = report.records_written
        result.batches_flushed = report.batches_flushed

    @staticmethod
    def _mark_failed(result: SyncResult, error: Exception) -> None:
        result.status = SyncStatus.FAILED
        result.error_type = type(error).__name__
        result.error = error.message if isinstance(error, SyncException) else str(error)

        if isinstance(error, SyncException):
            logger.error(
                f"Sync cycle for {result.source_name} failed: {error.message}",
                extra={"error_context": error.to_dict()}
            )

    async def _finish(
        self,
        result: SyncResult,
        status: SyncStatus,
        started: float,
        error: Optional[Exception]
    ) -> SyncResult:
        if error is not None:
            if status == SyncStatus.SKIPPED:
                result.status = status
                result.error_type = type(error).__name__
                result.error = error.message if isinstance(error, SyncException) else str(error)
                logger.warning(f"Sync cycle for {result.source_name} skipped: {result.error}")
            else:
                self._mark_failed(result, error)
        else:
            result.status = status

        result.duration_seconds = round(time.monotonic() - started, 3)

        logger.info(
            f"Sync cycle for {result.source_name} finished: {result.status.value} - "
            f"Extracted: {result.records_extracted}, Written: {result.records_written}, "
            f"Batches: {result.batches_flushed}, Duration: {result.duration_seconds}s"
        )

        if isinstance(self.checkpoints, RunHistoryStore):
            try:
                await self.checkpoints.record_result(result)
            except CheckpointError as e:
                logger.warning(f"Could not record run statistics for {result.source_name}: {e.message}")

        return result

    async def run_all(self, names: Optional[Iterable[str]] = None) -> List[SyncResult]:
        """Run one cycle per table, sequentially, in configured order"""
        results = []
        for name in (list(names) if names is not None else self.tables):
            results.append(await self.sync_table(name))

        succeeded = sum(1 for r in results if r.succeeded)
        logger.info(f"Sync pass complete: {succeeded}/{len(results)} tables succeeded")
        return results

    async def aclose(self) -> None:
        await self.loader.aclose()
        await self.extractor.aclose()


def build_sync_runner(settings: Settings) -> SyncRunner:
    """Wire a runner from settings"""
    return SyncRunner(
        extractor=ZabbixHistoryExtractor.from_settings(settings),
        loader=InfluxLoader.from_settings(settings),
        checkpoints=build_checkpoint_store(settings),
        tables=settings.ZABBIX_TABLES,
        batch_size=settings.SYNC_BATCH_SIZE,
        max_attempts=settings.SYNC_MAX_ATTEMPTS,
        lookback_seconds=settings.SYNC_LOOKBACK_SECONDS,
        backoff=backoff_from_name(
            settings.SYNC_RETRY_STRATEGY,
            delay=settings.SYNC_RETRY_DELAY,
            max_delay=settings.SYNC_RETRY_MAX_DELAY,
        ),
    )
