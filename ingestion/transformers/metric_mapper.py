"""
Map raw Zabbix history rows to normalized metric records
"""

import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Iterator

from pydantic import ValidationError

from core.exceptions import MappingError, UnknownTableVariantError
from models.base import HistoryTable
from schemas.metric import MetricRecord, RawRow
import logging

logger = logging.getLogger(__name__)


def _decode_float(value: Any) -> float:
    # history.value is double precision
    if isinstance(value, (bool, str)):
        raise TypeError(f"expected a floating point value, got {type(value).__name__}")
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"non-finite floating point value {value}")
    return value


def _decode_fixed_point(value: Any) -> float:
    # history_uint.value is numeric(20,0), delivered as Decimal
    if isinstance(value, bool):
        raise TypeError("expected a fixed-point value, got bool")
    if not isinstance(value, Decimal):
        value = Decimal(value)
    if not value.is_finite():
        raise ValueError(f"non-finite fixed-point value {value}")
    return float(value)


VALUE_DECODERS: Dict[HistoryTable, Callable[[Any], float]] = {
    HistoryTable.HISTORY: _decode_float,
    HistoryTable.HISTORY_UINT: _decode_fixed_point,
}


def decode_value(table: HistoryTable, value: Any) -> float:
    """
    Decode a raw history value according to the table it came from.

    Raises:
        UnknownTableVariantError: If no decoder exists for ``table``
        MappingError: If the value is missing or cannot be decoded
    """
    table = HistoryTable.from_name(table)
    decoder = VALUE_DECODERS.get(table)
    if decoder is None:
        raise UnknownTableVariantError(
            f"No value decoder for history table {table.value!r}",
            context={"source_name": table.value}
        )

    if value is None:
        raise MappingError(
            f"Missing value in {table.value} row",
            context={"source_name": table.value}
        )

    try:
        return decoder(value)
    except (TypeError, ValueError, InvalidOperation, OverflowError) as e:
        raise MappingError(
            f"Cannot decode {table.value} value {value!r}",
            context={"source_name": table.value, "value": repr(value)},
            original_exception=e
        )


class MetricMapper:
    """
    Turns RawRow tuples into MetricRecord points for one history table.

    The mapping is pure: the same row always yields the same record.
    """

    def __init__(self, table: HistoryTable):
        self.table = HistoryTable.from_name(table)

    def map(self, row: RawRow) -> MetricRecord:
        context = {
            "source_name": self.table.value,
            "item_key": row.item_key,
            "clock": row.clock,
        }

        try:
            value = decode_value(self.table, row.value)
        except MappingError as e:
            e.context.update(context)
            raise

        if row.clock is None:
            raise MappingError("Missing clock in history row", context=context)

        try:
            return MetricRecord(
                time=datetime.fromtimestamp(int(row.clock), tz=timezone.utc),
                measurement=row.item_key,
                endpoint=row.host_name,
                group_id=row.group_id,
                host_group=row.host_group,
                ip=row.ip,
                dns=row.dns or "",
                port=row.port,
                value=value,
            )
        except (ValidationError, TypeError, ValueError, OverflowError, OSError) as e:
            raise MappingError(
                f"Malformed {self.table.value} row for item {row.item_key!r}",
                context=context,
                original_exception=e
            )

    def map_all(self, rows: Iterable[RawRow]) -> Iterator[MetricRecord]:
        """Lazily map rows, preserving their order"""
        for row in rows:
            yield self.map(row)
