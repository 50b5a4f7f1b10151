"""
Pydantic schemas for data validation and serialization.

This package defines the data units flowing through the sync pipeline:

Schemas:
    metric: RawRow (one extracted history row) and MetricRecord (normalized point)
    sync: SyncResult (outcome of one cycle for one history table)

Usage:
    from schemas import MetricRecord, RawRow, SyncResult

Example:
    record = MetricRecord(
        time=datetime(2024, 1, 15, tzinfo=timezone.utc),
        measurement="system.cpu.load[all,avg1]",
        endpoint="web-01",
        group_id=2,
        host_group="Linux servers",
        ip="10.0.0.5",
        dns="",
        port="10050",
        value=0.42,
    )

    # Validators normalize tags on construction
    assert record.endpoint == "WEB01"
    assert record.host_group == "LINUXSERVERS"
    assert record.dns == "None"
"""

from schemas.metric import MetricRecord, RawRow, normalize_tag
from schemas.sync import SyncResult

__all__ = [
    "MetricRecord",
    "RawRow",
    "SyncResult",
    "normalize_tag",
]
