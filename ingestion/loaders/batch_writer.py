"""
Accumulate metric records into fixed-size batches and deliver each batch
with bounded retry
"""

import asyncio
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence

from core.retry import BackoffStrategy, Sleep, retry_async
from schemas.metric import MetricRecord
import logging

logger = logging.getLogger(__name__)


class MetricLoader(Protocol):
    async def write(self, records: Sequence[MetricRecord]) -> int: ...


@dataclass
class FlushReport:
    """Totals for one ``write_all`` call"""
    records_written: int = 0
    batches_flushed: int = 0


class BatchWriter:
    """
    Batch records and flush them through a loader in extraction order.

    Every batch, including the final partial one, is delivered through the
    same retry loop. The first batch that cannot be delivered stops the
    write; batches flushed before it stay delivered.
    """

    def __init__(
        self,
        loader: MetricLoader,
        batch_size: int = 10000,
        max_attempts: int = 5,
        backoff: Optional[BackoffStrategy] = None,
        sleep: Sleep = asyncio.sleep
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.loader = loader
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.sleep = sleep

    async def _flush(self, batch: List[MetricRecord], batch_number: int) -> int:
        return await retry_async(
            lambda: self.loader.write(batch),
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            sleep=self.sleep,
            description=f"Delivery of batch {batch_number} ({len(batch)} records)",
        )

    async def write_all(
        self,
        records: Iterable[MetricRecord],
        total: int,
        report: Optional[FlushReport] = None
    ) -> FlushReport:
        """
        Deliver all records.

        Args:
            records: Records in extraction order; may be a lazy iterator
            total: Expected number of records, used for progress reporting
            report: Report to update in place, so totals survive a failed write

        Raises:
            RetryExhaustedError: A batch failed on every attempt
            DeliveryRejectedError: The destination refused a batch
            MappingError: Raised by ``records`` while producing a record
        """
        report = report if report is not None else FlushReport()
        batch: List[MetricRecord] = []

        for record in records:
            batch.append(record)
            if len(batch) >= self.batch_size:
                await self._deliver(batch, report, total)
                batch = []

        if batch:
            await self._deliver(batch, report, total)

        return report

    async def _deliver(self, batch: List[MetricRecord], report: FlushReport, total: int) -> None:
        await self._flush(batch, report.batches_flushed + 1)
        report.batches_flushed += 1
        report.records_written += len(batch)

        if total > 0:
            percentage = report.records_written * 100 / total
            logger.info(
                f"Flushed batch {report.batches_flushed} into InfluxDB: "
                f"{report.records_written}/{total} records ({percentage:.2f}%)"
            )
