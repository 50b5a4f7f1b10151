from sqlalchemy.orm import declarative_base
import enum

from core.exceptions import UnknownTableVariantError

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class SyncStatus(str, enum.Enum):
    """Sync cycle status"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class HistoryTable(str, enum.Enum):
    """
    Zabbix history tables the engine knows how to decode.

    Each member stores its values with a different numeric encoding:
    - history: double precision floats
    - history_uint: numeric(20,0), fetched as fixed-point Decimal
    """
    HISTORY = "history"
    HISTORY_UINT = "history_uint"

    @classmethod
    def from_name(cls, name: str) -> "HistoryTable":
        """Resolve a configured table name, raising a typed error for unknown ones"""
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            raise UnknownTableVariantError(
                f"Unknown history table: {name!r}",
                context={
                    "source_name": name,
                    "known_tables": [t.value for t in cls],
                }
            ) from None
