"""
Zabbix history extractor.

This module reads new history rows from a Zabbix PostgreSQL database:
- Failover across the configured Zabbix servers, first reachable one wins
- One range query per history table: ``clock >= cursor``, ordered by clock
- Query deadline enforced with ``asyncio.wait_for``
- Driver errors and timeouts surfaced as typed, cycle-level errors
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql import Select

from core.config import Settings
from core.database import create_source_engines
from core.exceptions import QueryExecutionError, SourceConnectionError
from models.base import HistoryTable
from models.zabbix import HISTORY_TABLES, hosts, hosts_groups, hstgrp, interface, items
from schemas.metric import RawRow
import logging

logger = logging.getLogger(__name__)


class ZabbixHistoryExtractor:
    """
    Extract history rows from the first reachable Zabbix server.

    Attributes:
        engines: One async engine per Zabbix server, in failover order
        query_timeout: Deadline for a single range query in seconds
    """

    def __init__(self, engines: Sequence[AsyncEngine], query_timeout: Optional[float] = 600.0):
        if not engines:
            raise ValueError("At least one Zabbix engine is required")
        self.engines = list(engines)
        self.query_timeout = query_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ZabbixHistoryExtractor":
        return cls(
            engines=create_source_engines(settings),
            query_timeout=settings.ZABBIX_QUERY_TIMEOUT,
        )

    async def _open_first_reachable(self) -> AsyncConnection:
        errors = []
        for engine in self.engines:
            server = engine.url.render_as_string(hide_password=True)
            try:
                conn = await engine.connect()
                logger.info(f"Connected to Zabbix database at {engine.url.host}")
                return conn
            except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
                logger.warning(f"Zabbix server {engine.url.host} unreachable: {e}")
                errors.append((server, e))

        last_error = errors[-1][1]
        raise SourceConnectionError(
            "No configured Zabbix server is reachable",
            context={
                "servers": [server for server, _ in errors],
                "last_error": str(last_error),
            },
            original_exception=last_error
        )

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """
        Yield a connection to the first Zabbix server that accepts one.

        Raises:
            SourceConnectionError: If every configured server refused
        """
        conn = await self._open_first_reachable()
        try:
            yield conn
        finally:
            await conn.close()

    def build_query(self, table: HistoryTable, cursor: int) -> Select:
        """Range query over one history table joined with its host metadata"""
        hist = HISTORY_TABLES[HistoryTable.from_name(table)]

        joins = (
            hosts
            .join(items, items.c.hostid == hosts.c.hostid)
            .join(interface, interface.c.hostid == hosts.c.hostid)
            .join(hosts_groups, hosts_groups.c.hostid == hosts.c.hostid)
            .join(hstgrp, hstgrp.c.groupid == hosts_groups.c.groupid)
            .join(hist, hist.c.itemid == items.c.itemid)
        )

        return (
            select(
                hosts.c.name,
                items.c.key_,
                hist.c.clock,
                hist.c.value,
                interface.c.ip,
                interface.c.dns,
                interface.c.port,
                hstgrp.c.name.label("group_name"),
                hosts_groups.c.groupid,
            )
            .select_from(joins)
            .where(hist.c.clock >= cursor)
            .order_by(hist.c.clock.asc())
        )

    async def fetch_rows(self, conn: AsyncConnection, table: HistoryTable, cursor: int) -> List[RawRow]:
        """
        Fetch every row of ``table`` with ``clock >= cursor``, oldest first.

        Raises:
            QueryExecutionError: On driver errors or when the deadline passes
        """
        table = HistoryTable.from_name(table)
        query = self.build_query(table, cursor)
        logger.info(f"Querying Zabbix for table {table.value} from clock {cursor}")

        try:
            result = await asyncio.wait_for(conn.execute(query), timeout=self.query_timeout)
            rows = [RawRow(*row) for row in result.all()]
        except asyncio.TimeoutError as e:
            raise QueryExecutionError(
                f"History query for {table.value} timed out",
                context={
                    "source_name": table.value,
                    "cursor": cursor,
                    "timeout": self.query_timeout,
                },
                original_exception=e
            )
        except (SQLAlchemyError, OSError) as e:
            raise QueryExecutionError(
                f"History query for {table.value} failed",
                context={"source_name": table.value, "cursor": cursor},
                original_exception=e
            )

        logger.info(f"Fetched {len(rows)} rows from {table.value}")
        return rows

    async def aclose(self) -> None:
        for engine in self.engines:
            await engine.dispose()
