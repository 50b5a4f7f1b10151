"""
Database engine and session management with SQLAlchemy async
"""

from typing import List

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import Settings
import logging

logger = logging.getLogger(__name__)


def create_source_engines(settings: Settings) -> List[AsyncEngine]:
    """
    Create one engine per configured Zabbix server.

    Engines are lazy: nothing connects until the extractor asks for a
    connection, so unreachable servers are only noticed at cycle start.
    """
    engines = []
    for url in settings.zabbix_urls():
        engines.append(
            create_async_engine(
                url,
                echo=False,
                poolclass=NullPool,  # One connection per cycle, closed afterwards
                connect_args={
                    "timeout": settings.ZABBIX_CONNECT_TIMEOUT,
                    "command_timeout": settings.ZABBIX_QUERY_TIMEOUT,
                },
            )
        )
    return engines


def create_state_engine(database_url: str) -> AsyncEngine:
    """Create the engine backing the database checkpoint store"""
    return create_async_engine(database_url, echo=False, future=True)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create session factory"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )
