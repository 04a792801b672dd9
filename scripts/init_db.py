import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine
from core.logging import ErrorLog
from ingestion.bindings import BindingRegistry
from models.base import Base
# Import all models to ensure they are registered
from models.migration_run import MigrationRun, ImportOutcomeRecord

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def init_database():
    if not settings.database_url:
        logger.error("DATABASE_URL is not set")
        sys.exit(2)

    logger.info("Connecting to database...")
    engine = create_engine(settings.database_url)

    # Collections declared by binding modules; the loader also creates them on first load
    registry = BindingRegistry.scan(settings.BINDINGS_DIR, error_log=ErrorLog(settings.ERROR_LOG_PATH))

    async with engine.begin() as conn:
        logger.info("Creating audit tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Creating {len(registry)} collection tables...")
        await conn.run_sync(registry.metadata.create_all)
        logger.info("Tables created successfully.")

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(init_database())
