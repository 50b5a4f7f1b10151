"""
Create the checkpoint table used by the database checkpoint backend
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import load_settings
from core.database import create_state_engine
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.checkpoint import SyncCheckpoint  # noqa: F401

logger = logging.getLogger(__name__)


async def init_database(database_url: str):
    logger.info("Connecting to checkpoint database...")
    engine = create_state_engine(database_url)

    async with engine.begin() as conn:
        logger.info("Creating tables...")
        # Only the checkpoint table is registered on Base; Zabbix tables are never created
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created successfully.")

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the sync checkpoint table")
    parser.add_argument("--config", help="Path to a TOML configuration file")
    args = parser.parse_args()

    settings = load_settings(args.config)
    setup_logging(settings.LOG_LEVEL)
    asyncio.run(init_database(settings.CHECKPOINT_DATABASE_URL))
