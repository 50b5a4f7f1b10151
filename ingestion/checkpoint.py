"""
Checkpoint stores: durable per-table sync cursors.

A cursor is the lower bound (epoch seconds) for the next extraction of a
history table. Stores return ``DEFAULT_CURSOR`` for tables that were never
synced and must persist writes atomically.

Two backends are provided:
- FileCheckpointStore: one small file per table holding the integer cursor
- DatabaseCheckpointStore: one ``sync_checkpoints`` row per table, with
  run statistics updated from every cycle result
"""

import asyncio
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import Settings
from core.database import create_session_maker, create_state_engine
from core.exceptions import CheckpointError
from models.base import SyncStatus
from models.checkpoint import SyncCheckpoint
from schemas.sync import SyncResult

logger = logging.getLogger(__name__)

DEFAULT_CURSOR = 0


class CheckpointStore(Protocol):
    """Durable cursor per source, keyed by history table name"""

    async def read(self, source_name: str) -> int: ...

    async def write(self, source_name: str, cursor: int) -> None: ...


@runtime_checkable
class RunHistoryStore(Protocol):
    """Checkpoint stores that also keep per-cycle statistics"""

    async def record_result(self, result: SyncResult) -> None: ...


class FileCheckpointStore:
    """
    Checkpoint files in a directory, one per history table.

    Each file contains the cursor as a decimal integer. Writes go to a
    temporary file in the same directory which is fsynced and then renamed
    over the target, so readers never observe a partial value.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, source_name: str) -> Path:
        if not source_name or os.sep in source_name or source_name.startswith("."):
            raise CheckpointError(
                f"Invalid checkpoint name: {source_name!r}",
                context={"source_name": source_name}
            )
        return self.directory / source_name

    async def read(self, source_name: str) -> int:
        return await asyncio.to_thread(self._read, source_name)

    async def write(self, source_name: str, cursor: int) -> None:
        await asyncio.to_thread(self._write, source_name, cursor)

    def _read(self, source_name: str) -> int:
        path = self.path_for(source_name)
        try:
            content = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            logger.info(f"No checkpoint for {source_name}, starting from {DEFAULT_CURSOR}")
            return DEFAULT_CURSOR
        except OSError as e:
            raise CheckpointError(
                f"Failed to read checkpoint for {source_name}",
                context={"source_name": source_name, "path": str(path), "operation": "read"},
                original_exception=e
            )

        if not content:
            return DEFAULT_CURSOR

        try:
            return int(content)
        except ValueError as e:
            raise CheckpointError(
                f"Corrupt checkpoint for {source_name}",
                context={
                    "source_name": source_name,
                    "path": str(path),
                    "checkpoint_value": content[:50],
                    "operation": "read"
                },
                original_exception=e
            )

    def _write(self, source_name: str, cursor: int) -> None:
        path = self.path_for(source_name)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{source_name}.", dir=self.directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(str(int(cursor)))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise CheckpointError(
                f"Failed to write checkpoint for {source_name}",
                context={
                    "source_name": source_name,
                    "path": str(path),
                    "checkpoint_value": cursor,
                    "operation": "write"
                },
                original_exception=e
            )
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug(f"Checkpoint for {source_name} set to {cursor}")


class DatabaseCheckpointStore:
    """
    Checkpoints stored in the ``sync_checkpoints`` table.

    Each write commits its own transaction, so the cursor is durable as soon
    as ``write`` returns.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def _get(self, session, source_name: str) -> Optional[SyncCheckpoint]:
        result = await session.execute(
            select(SyncCheckpoint).where(SyncCheckpoint.source_name == source_name)
        )
        return result.scalar_one_or_none()

    async def read(self, source_name: str) -> int:
        try:
            async with self.session_maker() as session:
                checkpoint = await self._get(session, source_name)
        except SQLAlchemyError as e:
            raise CheckpointError(
                f"Failed to read checkpoint for {source_name}",
                context={"source_name": source_name, "operation": "read"},
                original_exception=e
            )

        if checkpoint is None:
            logger.info(f"No checkpoint for {source_name}, starting from {DEFAULT_CURSOR}")
            return DEFAULT_CURSOR
        return int(checkpoint.cursor)

    async def write(self, source_name: str, cursor: int) -> None:
        try:
            async with self.session_maker() as session:
                checkpoint = await self._get(session, source_name)
                if checkpoint is None:
                    checkpoint = SyncCheckpoint(source_name=source_name, cursor=cursor)
                    session.add(checkpoint)
                else:
                    checkpoint.cursor = cursor
                await session.commit()
        except SQLAlchemyError as e:
            raise CheckpointError(
                f"Failed to write checkpoint for {source_name}",
                context={"source_name": source_name, "checkpoint_value": cursor, "operation": "write"},
                original_exception=e
            )

    async def record_result(self, result: SyncResult) -> None:
        """Update run statistics from a finished cycle"""
        now = datetime.now(timezone.utc)
        try:
            async with self.session_maker() as session:
                checkpoint = await self._get(session, result.source_name)
                if checkpoint is None:
                    checkpoint = SyncCheckpoint(
                        source_name=result.source_name,
                        cursor=result.cursor_before or DEFAULT_CURSOR,
                        total_runs=0,
                        total_records_processed=0,
                        last_records_processed=0,
                    )
                    session.add(checkpoint)

                checkpoint.status = result.status
                checkpoint.last_run_at = now
                checkpoint.total_runs += 1
                checkpoint.last_records_processed = result.records_written
                checkpoint.total_records_processed += result.records_written
                checkpoint.error_message = result.error

                if result.status == SyncStatus.SUCCESS:
                    checkpoint.last_success_at = now
                elif result.status == SyncStatus.FAILED:
                    checkpoint.last_failure_at = now

                await session.commit()
        except SQLAlchemyError as e:
            raise CheckpointError(
                f"Failed to record run statistics for {result.source_name}",
                context={"source_name": result.source_name, "operation": "record_result"},
                original_exception=e
            )


def build_checkpoint_store(settings: Settings) -> Union[FileCheckpointStore, DatabaseCheckpointStore]:
    """Create the checkpoint backend selected by CHECKPOINT_BACKEND"""
    backend = settings.CHECKPOINT_BACKEND.strip().lower()
    if backend == "file":
        return FileCheckpointStore(settings.CHECKPOINT_DIR)
    if backend == "database":
        engine = create_state_engine(settings.CHECKPOINT_DATABASE_URL)
        return DatabaseCheckpointStore(create_session_maker(engine))
    raise ValueError(f"Unknown CHECKPOINT_BACKEND {settings.CHECKPOINT_BACKEND!r}; expected 'file' or 'database'")
