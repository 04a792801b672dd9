"""
Database engine and session management with SQLAlchemy async
"""

from typing import Any, Dict
from pydantic import TypeAdapter
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from core.config import settings
from core.exceptions import DatabaseConnectionError
import logging

logger = logging.getLogger(__name__)

# Documents hold dates and decimals read from archives; serialize them as JSON strings
_document_adapter = TypeAdapter(Dict[str, Any])


def serialize_document(document: Dict[str, Any]) -> str:
    """JSON serializer used by the engine for JSON/JSONB columns"""
    return _document_adapter.dump_json(document).decode("utf-8")


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine shared by the whole run"""
    return create_async_engine(
        database_url,
        echo=settings.ENVIRONMENT == "development" and settings.LOG_LEVEL.upper() == "DEBUG",
        pool_pre_ping=True,
        json_serializer=serialize_document,
        future=True
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create session factory; each (site, record type) pair gets its own session"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def verify_connection(engine: AsyncEngine) -> None:
    """
    Probe the destination with a trivial query.

    Raises:
        DatabaseConnectionError: If the destination cannot be reached
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        raise DatabaseConnectionError(
            "Failed to connect to the destination database",
            context={"dialect": engine.dialect.name},
            original_exception=e
        )
    logger.info("Destination database connected")
