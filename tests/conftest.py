"""
Pytest configuration and fixtures
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from core.database import create_session_maker
from core.exceptions import DeliveryError
from ingestion.checkpoint import DatabaseCheckpointStore, FileCheckpointStore
from models.base import Base, HistoryTable
from models.zabbix import HISTORY_TABLES, hosts, hosts_groups, hstgrp, interface, items, zabbix_metadata
from schemas.metric import MetricRecord, RawRow

# Wall clock used by runner tests; the advanced checkpoint is FIXED_NOW - lookback
FIXED_NOW = 1_000

CPU_ITEM_ID = 10
DISK_ITEM_ID = 11


def make_row(
    clock: int,
    value=1.0,
    host_name: str = "web-01",
    item_key: str = "system.cpu.load[all,avg1]",
    ip: str = "10.0.0.5",
    dns: str = "",
    port: str = "10050",
    host_group: str = "Linux servers",
    group_id: int = 2,
) -> RawRow:
    return RawRow(
        host_name=host_name,
        item_key=item_key,
        clock=clock,
        value=value,
        ip=ip,
        dns=dns,
        port=port,
        host_group=host_group,
        group_id=group_id,
    )


def make_record(clock: int, value: float = 1.0, **tags) -> MetricRecord:
    fields = {
        "measurement": "system.cpu.load[all,avg1]",
        "endpoint": "web-01",
        "group_id": 2,
        "host_group": "Linux servers",
        "ip": "10.0.0.5",
        "dns": "",
        "port": "10050",
    }
    fields.update(tags)
    return MetricRecord(time=datetime.fromtimestamp(clock, tz=timezone.utc), value=value, **fields)


# ============================================================================
# Collaborator fakes
# ============================================================================

class FakeLoader:
    """
    In-memory destination.

    Attributes:
        batches: Delivered batches, in delivery order
        attempts: Number of write calls, failed ones included
    """

    def __init__(
        self,
        fail_attempts=(),
        fail_after_batches: Optional[int] = None,
        error: Optional[Exception] = None,
        ping_error: Optional[Exception] = None,
    ):
        self.fail_attempts = set(fail_attempts)
        self.fail_after_batches = fail_after_batches
        self.error = error
        self.ping_error = ping_error
        self.batches: List[List[MetricRecord]] = []
        self.attempts = 0
        self.pings = 0
        self.closed = False

    async def ping(self) -> None:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error

    async def write(self, records) -> int:
        self.attempts += 1
        exhausted = self.fail_after_batches is not None and len(self.batches) >= self.fail_after_batches
        if self.attempts in self.fail_attempts or exhausted:
            raise self.error or DeliveryError(
                "InfluxDB write failed with HTTP 503",
                context={"status_code": 503, "batch_size": len(records)}
            )
        self.batches.append(list(records))
        return len(records)

    async def aclose(self) -> None:
        self.closed = True

    @property
    def batch_sizes(self) -> List[int]:
        return [len(batch) for batch in self.batches]

    @property
    def records(self) -> List[MetricRecord]:
        return [record for batch in self.batches for record in batch]


class FakeExtractor:
    """Serves canned rows per history table, applying the clock >= cursor filter"""

    def __init__(
        self,
        rows: Optional[Dict[str, List[RawRow]]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        connect_error: Optional[Exception] = None,
    ):
        self.rows = rows or {}
        self.errors = errors or {}
        self.connect_error = connect_error
        self.queries = []
        self.closed = False

    @asynccontextmanager
    async def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        yield object()

    async def fetch_rows(self, conn, table: HistoryTable, cursor: int) -> List[RawRow]:
        self.queries.append((table.value, cursor))
        if table.value in self.errors:
            raise self.errors[table.value]
        return sorted(
            (row for row in self.rows.get(table.value, []) if row.clock >= cursor),
            key=lambda row: row.clock,
        )

    async def aclose(self) -> None:
        self.closed = True


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def fake_loader():
    return FakeLoader()


@pytest.fixture
def file_store(tmp_path):
    return FileCheckpointStore(tmp_path / "checkpoints")


# ============================================================================
# Databases
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def state_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Checkpoint database on a temporary SQLite file"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_store(state_engine) -> DatabaseCheckpointStore:
    return DatabaseCheckpointStore(create_session_maker(state_engine))


@pytest_asyncio.fixture(scope="function")
async def zabbix_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    SQLite stand-in for a Zabbix database: one host in one group, with a
    float item and an unsigned item, and empty history tables.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'zabbix.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(zabbix_metadata.create_all)
        await conn.execute(insert(hosts), [{"hostid": 1, "name": "web-01"}])
        await conn.execute(insert(items), [
            {"itemid": CPU_ITEM_ID, "hostid": 1, "key_": "system.cpu.load[all,avg1]"},
            {"itemid": DISK_ITEM_ID, "hostid": 1, "key_": "vfs.fs.size[/,free]"},
        ])
        await conn.execute(insert(interface), [
            {"interfaceid": 1, "hostid": 1, "ip": "10.0.0.5", "dns": "", "port": "10050"},
        ])
        await conn.execute(insert(hosts_groups), [{"hostgroupid": 1, "hostid": 1, "groupid": 2}])
        await conn.execute(insert(hstgrp), [{"groupid": 2, "name": "Linux servers"}])

    yield engine

    await engine.dispose()


async def insert_history(engine: AsyncEngine, table: HistoryTable, rows) -> None:
    """Insert (itemid, clock, value) tuples into a history table"""
    async with engine.begin() as conn:
        await conn.execute(
            insert(HISTORY_TABLES[table]),
            [{"itemid": itemid, "clock": clock, "value": value, "ns": 0} for itemid, clock, value in rows],
        )
