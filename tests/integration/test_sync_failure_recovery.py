"""
Failure and recovery scenarios across complete sync cycles
"""

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from conftest import CPU_ITEM_ID, DISK_ITEM_ID, FIXED_NOW, insert_history, no_sleep
from ingestion.extractors.zabbix_extractor import ZabbixHistoryExtractor
from ingestion.loaders.influx_loader import InfluxLoader
from ingestion.runner import SyncRunner
from models.base import HistoryTable, SyncStatus


def build_runner(engines, handler, store, batch_size=2, clock=lambda: FIXED_NOW) -> SyncRunner:
    loader = InfluxLoader(
        url="http://influx:8086",
        token="secret",
        org="monitoring",
        bucket="zabbix",
        transport=httpx.MockTransport(handler),
    )
    return SyncRunner(
        extractor=ZabbixHistoryExtractor(engines),
        loader=loader,
        checkpoints=store,
        batch_size=batch_size,
        max_attempts=5,
        lookback_seconds=50,
        sleep=no_sleep,
        clock=clock,
    )


class FlakyInflux:
    """Healthy /ping; write answers come from a callable of the attempt number"""

    def __init__(self, status_for_attempt):
        self.status_for_attempt = status_for_attempt
        self.attempts = 0
        self.delivered = []

    def __call__(self, request):
        if request.url.path == "/ping":
            return httpx.Response(204)
        self.attempts += 1
        status = self.status_for_attempt(self.attempts)
        if status == 204:
            self.delivered.extend(request.content.decode().splitlines())
        return httpx.Response(status)


class TestFailureRecovery:
    """Test rollback and reprocessing"""

    @pytest.mark.asyncio
    async def test_exhausted_delivery_rolls_back(self, zabbix_engine, file_store):
        """Five failed attempts, then the cursor returns to its pre-cycle value"""
        await file_store.write("history", 90)
        await insert_history(zabbix_engine, HistoryTable.HISTORY, [(CPU_ITEM_ID, 100, 0.1)])
        influx = FlakyInflux(lambda attempt: 503)
        runner = build_runner([zabbix_engine], influx, file_store)

        result = await runner.sync_table("history")
        await runner.loader.aclose()

        # Assertions
        assert influx.attempts == 5
        assert result.status == SyncStatus.FAILED
        assert result.error_type == "RetryExhaustedError"
        assert result.rolled_back is True
        assert await file_store.read("history") == 90

    @pytest.mark.asyncio
    async def test_failed_window_is_reprocessed(self, zabbix_engine, file_store):
        """At-least-once: rows delivered before a failure are sent again next cycle"""
        await insert_history(zabbix_engine, HistoryTable.HISTORY, [
            (CPU_ITEM_ID, clock, 0.1) for clock in (100, 105, 110, 115, 120)
        ])

        # First batch succeeds, everything after it fails
        influx = FlakyInflux(lambda attempt: 204 if attempt == 1 else 503)
        runner = build_runner([zabbix_engine], influx, file_store)
        failed = await runner.sync_table("history")
        await runner.loader.aclose()

        assert failed.status == SyncStatus.FAILED
        assert failed.records_written == 2
        assert await file_store.read("history") == 0

        healthy = FlakyInflux(lambda attempt: 204)
        runner = build_runner([zabbix_engine], healthy, file_store)
        recovered = await runner.sync_table("history")
        await runner.loader.aclose()

        assert recovered.status == SyncStatus.SUCCESS
        assert recovered.records_written == 5
        assert [line.rsplit(" ", 1)[1] for line in healthy.delivered] == ["100", "105", "110", "115", "120"]
        assert await file_store.read("history") == FIXED_NOW - 50

    @pytest.mark.asyncio
    async def test_rejected_batch_rolls_back_without_retry(self, zabbix_engine, file_store):
        await insert_history(zabbix_engine, HistoryTable.HISTORY, [(CPU_ITEM_ID, 100, 0.1)])
        influx = FlakyInflux(lambda attempt: 401)
        runner = build_runner([zabbix_engine], influx, file_store)

        result = await runner.sync_table("history")
        await runner.loader.aclose()

        assert influx.attempts == 1
        assert result.error_type == "DeliveryRejectedError"
        assert await file_store.read("history") == 0

    @pytest.mark.asyncio
    async def test_query_error_continues_with_next_table(self, zabbix_engine, file_store):
        """A table missing from the source fails; the next table still syncs"""
        await insert_history(zabbix_engine, HistoryTable.HISTORY_UINT, [(DISK_ITEM_ID, 100, 3)])
        async with zabbix_engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE history")

        influx = FlakyInflux(lambda attempt: 204)
        runner = build_runner([zabbix_engine], influx, file_store)

        results = await runner.run_all(["history", "history_uint"])
        await runner.loader.aclose()

        # Assertions
        assert [r.status for r in results] == [SyncStatus.FAILED, SyncStatus.SUCCESS]
        assert results[0].error_type == "QueryExecutionError"
        assert results[0].rolled_back is True
        assert await file_store.read("history") == 0
        assert len(influx.delivered) == 1

    @pytest.mark.asyncio
    async def test_unreachable_source_skips(self, tmp_path, file_store):
        missing = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'zabbix.db'}")
        influx = FlakyInflux(lambda attempt: 204)
        runner = build_runner([missing], influx, file_store)

        results = await runner.run_all(["history", "history_uint"])
        await runner.aclose()

        assert [r.status for r in results] == [SyncStatus.SKIPPED, SyncStatus.SKIPPED]
        assert influx.attempts == 0
        assert not file_store.directory.exists()

    @pytest.mark.asyncio
    async def test_unreachable_destination_skips(self, zabbix_engine, file_store):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        await insert_history(zabbix_engine, HistoryTable.HISTORY, [(CPU_ITEM_ID, 100, 0.1)])
        runner = build_runner([zabbix_engine], handler, file_store)

        result = await runner.sync_table("history")
        await runner.loader.aclose()

        assert result.status == SyncStatus.SKIPPED
        assert result.error_type == "DestinationConnectionError"
        assert not file_store.directory.exists()

    @pytest.mark.asyncio
    async def test_clock_stepping_back_keeps_cursor(self, zabbix_engine, file_store):
        await insert_history(zabbix_engine, HistoryTable.HISTORY, [(CPU_ITEM_ID, 100, 0.1)])
        influx = FlakyInflux(lambda attempt: 204)

        runner = build_runner([zabbix_engine], influx, file_store, clock=lambda: 2_000)
        await runner.sync_table("history")
        await runner.loader.aclose()

        runner = build_runner([zabbix_engine], influx, file_store, clock=lambda: 1_500)
        result = await runner.sync_table("history")
        await runner.loader.aclose()

        assert result.cursor_before == 1_950
        assert result.cursor_after == 1_950
        assert await file_store.read("history") == 1_950
