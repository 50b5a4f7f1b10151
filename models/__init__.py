"""
SQLAlchemy models for the sync daemon.

This package defines two kinds of schema:

Models:
    base: Base declarative class and shared enums (SyncStatus, HistoryTable)
    checkpoint: Per-table sync cursor with run statistics (owned by this project)
    zabbix: Read-only Core tables of the Zabbix source database

Database Schema:
    Only ``checkpoint`` is created by this project (see scripts/init_db.py).
    The Zabbix tables are declared on a separate MetaData so they are never
    created or migrated by accident.

Usage:
    from models import SyncCheckpoint, HistoryTable
    from models.zabbix import HISTORY_TABLES

Example:
    table = HistoryTable.from_name("history_uint")
    history = HISTORY_TABLES[table]
"""

from models.base import Base, SyncStatus, HistoryTable
from models.checkpoint import SyncCheckpoint

__all__ = [
    "Base",
    "SyncStatus",
    "HistoryTable",
    "SyncCheckpoint",
]
