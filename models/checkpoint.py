from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, BigInteger
from datetime import datetime, timezone
from models.base import Base, SyncStatus


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncCheckpoint(Base):
    """
    Tracks the sync cursor per Zabbix history table.

    Purpose:
    - Resume sync from the last advanced cursor after a restart
    - Bound reprocessing to the lookback window
    - Keep a small audit trail of the last cycle outcome

    Design:
    - One row per source (history table name)
    - cursor stores the lower bound (epoch seconds) for the next extraction
    """
    __tablename__ = "sync_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Source identification
    source_name = Column(String(100), nullable=False, unique=True, index=True)

    # Checkpoint data
    cursor = Column(BigInteger, nullable=False, default=0)

    # Statistics
    last_run_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_success_at = Column(DateTime(timezone=True), nullable=True)
    last_failure_at = Column(DateTime(timezone=True), nullable=True)

    total_runs = Column(Integer, default=0, nullable=False)
    total_records_processed = Column(BigInteger, default=0, nullable=False)
    last_records_processed = Column(Integer, default=0, nullable=False)

    # Status
    status = Column(Enum(SyncStatus), default=SyncStatus.PENDING, nullable=False)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utc_now, onupdate=_utc_now)
